# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - SESSION STORE
# =============================================================================
"""
Session Store Module

Durable, crash-recoverable state for one orchestration task with an
in-memory fast path. Every mutation persists the session; a failed write
is logged and the in-memory copy stays authoritative for the rest of the
process.

Supported Backends:
    - File: one JSON document per session (default)
    - Redis: one key per session, archives under a separate key space

Layout (file backend):
    <dir>/<session_id>.json
    <dir>/archives/<session_id>_complete.json
"""

import os
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis

from orchestrator.engine.retry import RETRY_CONFIGS, retry
from orchestrator.models import (
    AgentResult,
    AgentRole,
    FixAttempt,
    HistoryEntry,
    LoggedCall,
    Requirements,
    Session,
    Stage,
    generate_session_id,
    render_already_tried,
)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class SessionStoreError(Exception):
    """Base exception for session store errors."""
    pass


class SessionNotFoundError(SessionStoreError):
    """Raised when a mutator targets a session that was never created or loaded."""
    pass


class SessionBackendError(SessionStoreError):
    """Raised when the storage backend fails."""
    pass


class InvalidStageTransitionError(SessionStoreError):
    """Raised when leaving a terminal stage or moving backwards outside the fix loop."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

MAX_HISTORY_TOKENS = 200_000
MIN_HISTORY_ENTRIES = 10


# =============================================================================
# BACKEND INTERFACE
# =============================================================================

class SessionBackend(ABC):
    """Storage backend for serialized sessions."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None when absent or unreadable."""
        pass

    @abstractmethod
    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        """Store the document. Raises SessionBackendError on failure."""
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def archive(self, session_id: str, data: Dict[str, Any]) -> str:
        """Write a complete snapshot to archive storage, return its location."""
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# FILE BACKEND
# =============================================================================

class FileSessionBackend(SessionBackend):
    """
    One JSON file per session.

    Writes go through a temporary file and an atomic rename so a crash never
    leaves a half-written session behind.
    """

    def __init__(self, config: Dict[str, Any]):
        self.directory = Path(config.get("dir", "./sessions"))
        self.archive_directory = self.directory / "archives"
        self.logger = logging.getLogger("orchestrator.session.file")
        self._lock = threading.RLock()

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        with self._lock:
            temp_path = path.with_suffix(".tmp")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                temp_path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
                temp_path.replace(path)
            except OSError as e:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError:
                    pass
                raise SessionBackendError(f"Failed to write {path}: {e}") from e

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(session_id)
        with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                self.logger.warning(f"Unreadable session file {path}: {e}")
                return None

    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        self._write(self._path(session_id), data)
        self.logger.debug(f"Saved session {session_id}")

    async def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        with self._lock:
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise SessionBackendError(f"Failed to delete {path}: {e}") from e
        return True

    async def archive(self, session_id: str, data: Dict[str, Any]) -> str:
        path = self.archive_directory / f"{session_id}_complete.json"
        self._write(path, data)
        return str(path)


# =============================================================================
# REDIS BACKEND
# =============================================================================

class RedisSessionBackend(SessionBackend):
    """
    Redis-based session persistence.

    Key structure:
        {prefix}:session:{id}   -> JSON session
        {prefix}:archive:{id}   -> JSON snapshot of a finished session
        {prefix}:sessions       -> Set of active session ids
    """

    def __init__(self, config: Dict[str, Any]):
        redis_config = config.get("redis", {})

        self.redis_url = redis_config.get("url", os.environ.get("REDIS_URL", "redis://localhost:6379"))
        self.key_prefix = redis_config.get("key_prefix", "n8n-orchestrator")
        self.ttl_seconds = int(redis_config.get("ttl_seconds", 0))

        self.logger = logging.getLogger("orchestrator.session.redis")
        self._client = None

    async def _get_client(self):
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                self.logger.info("Redis connection established")
            except Exception as e:
                raise SessionBackendError(f"Failed to connect to Redis: {e}") from e
        return self._client

    def _session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:session:{session_id}"

    def _archive_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:archive:{session_id}"

    def _index_key(self) -> str:
        return f"{self.key_prefix}:sessions"

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            client = await self._get_client()
            raw = await client.get(self._session_key(session_id))
        except Exception as e:
            self.logger.warning(f"Redis get failed for {session_id}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Corrupt session {session_id} in Redis: {e}")
            return None

    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        payload = json.dumps(data, default=str)

        async def _save() -> None:
            client = await self._get_client()
            async with client.pipeline(transaction=True) as pipe:
                if self.ttl_seconds > 0:
                    pipe.setex(self._session_key(session_id), self.ttl_seconds, payload)
                else:
                    pipe.set(self._session_key(session_id), payload)
                pipe.sadd(self._index_key(), session_id)
                await pipe.execute()

        try:
            await retry(_save, **RETRY_CONFIGS["session_persist"].to_kwargs())
        except Exception as e:
            raise SessionBackendError(f"Redis save failed for {session_id}: {e}") from e

    async def delete(self, session_id: str) -> bool:
        try:
            client = await self._get_client()
            async with client.pipeline(transaction=True) as pipe:
                pipe.delete(self._session_key(session_id))
                pipe.srem(self._index_key(), session_id)
                deleted, _ = await pipe.execute()
            return bool(deleted)
        except Exception as e:
            raise SessionBackendError(f"Redis delete failed for {session_id}: {e}") from e

    async def archive(self, session_id: str, data: Dict[str, Any]) -> str:
        key = self._archive_key(session_id)
        try:
            client = await self._get_client()
            await client.set(key, json.dumps(data, default=str))
        except Exception as e:
            raise SessionBackendError(f"Redis archive failed for {session_id}: {e}") from e
        return key

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# SESSION STORE
# =============================================================================

class SessionStore:
    """
    Session lifecycle and mutation API used by the orchestrator and agents.

    ``create`` and ``load`` must precede any mutator; mutators raise
    ``SessionNotFoundError`` otherwise.

    Usage:
        store = SessionStore.from_config({"backend": "file", "dir": "./sessions"})
        session = await store.create()
        await store.update_stage(session.id, Stage.RESEARCH)
    """

    def __init__(
        self,
        backend: SessionBackend,
        max_history_tokens: int = MAX_HISTORY_TOKENS,
        min_history_entries: int = MIN_HISTORY_ENTRIES,
    ):
        self._backend = backend
        self._cache: Dict[str, Session] = {}
        self.max_history_tokens = max_history_tokens
        self.min_history_entries = min_history_entries
        self.logger = logging.getLogger("orchestrator.session")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SessionStore":
        """
        Build a store for the ``sessions`` config section.

        Raises:
            ValueError: If the backend name is unknown
        """
        backend_type = config.get("backend", "file")

        if backend_type == "file":
            backend: SessionBackend = FileSessionBackend(config)
        elif backend_type == "redis":
            backend = RedisSessionBackend(config)
        else:
            raise ValueError(f"Unknown session backend: {backend_type}")

        return cls(backend)

    @property
    def backend(self) -> SessionBackend:
        return self._backend

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create(self, workflow_id: Optional[str] = None) -> Session:
        session = Session(id=generate_session_id(), workflow_id=workflow_id)
        self._cache[session.id] = session
        await self.persist(session)
        self.logger.info(f"Created session {session.id}")
        return session

    async def load(self, session_id: str) -> Optional[Session]:
        """Cached session, else the persisted one, else None."""
        if session_id in self._cache:
            return self._cache[session_id]

        data = await self._backend.get(session_id)
        if data is None:
            return None

        try:
            session = Session.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            self.logger.warning(f"Could not reconstruct session {session_id}: {e}")
            return None

        self._cache[session_id] = session
        return session

    async def persist(self, session: Session) -> bool:
        """Write the session; failures are logged, never raised."""
        session.last_updated_at = datetime.utcnow()
        try:
            await self._backend.save(session.id, session.to_dict())
            return True
        except SessionBackendError as e:
            self.logger.warning(f"Failed to persist session {session.id}: {e}")
            return False

    async def archive(self, session_id: str) -> Optional[str]:
        """Snapshot to archive storage, delete the active record, evict from cache."""
        session = self._require(session_id)
        session.last_updated_at = datetime.utcnow()
        location = None
        try:
            location = await self._backend.archive(session_id, session.to_dict())
            await self._backend.delete(session_id)
            self.logger.info(f"Archived session {session_id} to {location}")
        except SessionBackendError as e:
            self.logger.warning(f"Failed to archive session {session_id}: {e}")
        self._cache.pop(session_id, None)
        return location

    async def close(self) -> None:
        await self._backend.close()

    def _require(self, session_id: str) -> Session:
        session = self._cache.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def get(self, session_id: str) -> Session:
        """Cached session; raises SessionNotFoundError when not loaded."""
        return self._require(session_id)

    # =========================================================================
    # STAGE / CYCLE
    # =========================================================================

    async def update_stage(self, session_id: str, stage: Stage) -> Stage:
        """Set the stage, return the previous one."""
        session = self._require(session_id)
        previous = session.stage
        if not previous.can_move_to(stage):
            raise InvalidStageTransitionError(
                f"Session {session_id} is {previous.value}, cannot move to {stage.value}"
            )
        session.stage = stage
        await self.persist(session)
        return previous

    async def increment_cycle(self, session_id: str) -> int:
        session = self._require(session_id)
        session.cycle += 1
        await self.persist(session)
        return session.cycle

    async def set_workflow_id(self, session_id: str, workflow_id: str) -> None:
        session = self._require(session_id)
        session.workflow_id = workflow_id
        await self.persist(session)

    async def set_requirements(self, session_id: str, requirements: Requirements) -> None:
        session = self._require(session_id)
        session.requirements = requirements
        await self.persist(session)

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def add_history_entry(self, session_id: str, entry: HistoryEntry) -> None:
        session = self._require(session_id)
        session.history.append(entry)
        self._trim_history(session)
        await self.persist(session)

    def _trim_history(self, session: Session) -> None:
        """Drop entries after the first until under budget or at the floor."""
        total = session.total_tokens
        removed = 0
        while total > self.max_history_tokens and len(session.history) > self.min_history_entries:
            dropped = session.history.pop(1)
            total -= dropped.estimated_tokens
            removed += 1
        if removed:
            self.logger.info(
                f"Trimmed {removed} history entries from {session.id} ({total} tokens remain)"
            )

    def get_history(self, session_id: str, role: Optional[AgentRole] = None) -> List[HistoryEntry]:
        """All entries, or one agent's entries plus user turns."""
        history = self._require(session_id).history
        if role is None:
            return list(history)
        return [h for h in history if h.agent_role == role or h.role == "user"]

    # =========================================================================
    # FIX ATTEMPTS
    # =========================================================================

    async def log_fix_attempt(self, session_id: str, attempt: FixAttempt) -> None:
        session = self._require(session_id)
        session.fix_attempts.append(attempt)
        await self.persist(session)

    def get_fix_attempts(self, session_id: str) -> List[FixAttempt]:
        return list(self._require(session_id).fix_attempts)

    def format_already_tried(self, session_id: str) -> str:
        """Render the fix-attempt log as a do-not-repeat block for prompts."""
        return render_already_tried(self._require(session_id).fix_attempts)

    # =========================================================================
    # LOGGED CALLS
    # =========================================================================

    async def log_call(self, session_id: str, call: LoggedCall) -> None:
        session = self._require(session_id)
        session.logged_calls.append(call)
        await self.persist(session)

    async def log_calls(self, session_id: str, calls: List[LoggedCall]) -> None:
        if not calls:
            return
        session = self._require(session_id)
        session.logged_calls.extend(calls)
        await self.persist(session)

    def get_calls(self, session_id: str, role: Optional[AgentRole] = None) -> List[LoggedCall]:
        calls = self._require(session_id).logged_calls
        if role is None:
            return list(calls)
        return [c for c in calls if c.agent_role == role]

    # =========================================================================
    # AGENT RESULTS
    # =========================================================================

    async def store_agent_result(self, session_id: str, result: AgentResult) -> None:
        session = self._require(session_id)
        session.agent_results[result.agent_role] = result
        await self.persist(session)

    def get_agent_result(self, session_id: str, role: AgentRole) -> Optional[AgentResult]:
        return self._require(session_id).agent_results.get(role)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "SessionStoreError",
    "SessionNotFoundError",
    "SessionBackendError",
    "InvalidStageTransitionError",
    "MAX_HISTORY_TOKENS",
    "MIN_HISTORY_ENTRIES",
    "SessionBackend",
    "FileSessionBackend",
    "RedisSessionBackend",
    "SessionStore",
]
