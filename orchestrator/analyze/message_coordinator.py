# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - MESSAGE COORDINATOR
# =============================================================================
"""
Message Coordinator Module

Routes questions between agent roles during an analysis. A question is
queued on the SharedContextStore; ``process_pending`` hands it to the
handler registered for the target role and records the answer.

    ask()  ──▶ queue (pending) ──▶ process_pending() ──▶ handler
      ▲                                                     │
      └──────────── poll resolved answers ◀─────────────────┘

A handler failure leaves the question pending for another pass; after
three failures it is marked timed out.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from orchestrator.analyze.context_store import (
    AgentMessage,
    MessageStatus,
    MessageType,
    SharedContextStore,
)
from orchestrator.models import AgentRole

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
ANSWER_TIMEOUT_SECONDS = 60.0
MAX_RETRIES = 3

MessageHandler = Callable[[AgentMessage], Awaitable[str]]
Role = Union[AgentRole, str]


class MessageTimeoutError(Exception):
    """No answer arrived for a question in time, or it ran out of retries."""
    pass


@dataclass
class QAExchange:
    sender: str
    recipient: str
    question: str
    answer: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.recipient,
            "question": self.question,
            "answer": self.answer,
            "timestamp": self.timestamp.isoformat(),
        }


def _name(role: Role) -> str:
    return role.value if isinstance(role, AgentRole) else str(role)


class MessageCoordinator:
    """
    Q&A routing between agent roles.

    Args:
        store: Shared context holding the message queue
        poll_interval: Seconds between answer polls in ``ask``
        timeout: Seconds ``ask`` waits for an answer
        max_retries: Handler failures before a question times out
    """

    def __init__(
        self,
        store: SharedContextStore,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = ANSWER_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
    ):
        self.store = store
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_retries = max_retries
        self._handlers: Dict[str, MessageHandler] = {}
        self._exchanges: List[QAExchange] = []

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def register_handler(self, role: Role, handler: MessageHandler) -> None:
        self._handlers[_name(role)] = handler
        logger.info(f"Registered message handler for {_name(role)}")

    def unregister_handler(self, role: Role) -> None:
        self._handlers.pop(_name(role), None)

    def clear_handlers(self) -> None:
        self._handlers.clear()

    # =========================================================================
    # SENDING
    # =========================================================================

    def send_question(
        self,
        sender: Role,
        recipient: Role,
        question: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = "high",
    ) -> AgentMessage:
        """Queue a question without waiting for the answer."""
        message = AgentMessage(
            type=MessageType.QUESTION,
            sender=_name(sender),
            recipient=_name(recipient),
            subject=f"Question from {_name(sender)}",
            content=question,
            context=context or {},
            priority=priority,
        )
        self.store.add_message(message)
        logger.info(f"[Q&A] {message.sender} -> {message.recipient}: {question[:50]}")
        return message

    async def ask(
        self,
        sender: Role,
        recipient: Role,
        question: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = "high",
    ) -> AgentMessage:
        """
        Queue a question and wait for its answer.

        Raises:
            MessageTimeoutError: No answer within ``timeout`` or retries exhausted
        """
        message = self.send_question(sender, recipient, question, context, priority)
        return await self.wait_for_answer(message.id)

    def notify(self, sender: Role, recipient: Role, subject: str, content: str) -> AgentMessage:
        """Fire-and-forget message; resolved on creation."""
        message = AgentMessage(
            type=MessageType.NOTIFY,
            sender=_name(sender),
            recipient=_name(recipient),
            subject=subject,
            content=content,
            status=MessageStatus.RESOLVED,
        )
        self.store.add_message(message)
        return message

    async def wait_for_answer(self, message_id: str, timeout: Optional[float] = None) -> AgentMessage:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.timeout if timeout is None else timeout)

        while True:
            answer = self.store.answer_for(message_id)
            if answer is not None:
                return answer

            original = self.store.find_message(message_id)
            if original is not None and original.status == MessageStatus.TIMEOUT:
                raise MessageTimeoutError(f"Message {message_id} timed out")

            if loop.time() >= deadline:
                raise MessageTimeoutError(f"Timeout waiting for answer to message {message_id}")
            await asyncio.sleep(self.poll_interval)

    # =========================================================================
    # PROCESSING
    # =========================================================================

    def pending_questions(self) -> List[AgentMessage]:
        return [
            m for m in self.store.message_queue
            if m.status == MessageStatus.PENDING and m.type == MessageType.QUESTION
        ]

    async def process_pending(self) -> int:
        """
        Deliver every pending question to its target's handler.

        Returns:
            Number of questions answered in this pass
        """
        processed = 0

        for message in self.pending_questions():
            handler = self._handlers.get(message.recipient)
            if handler is None:
                logger.warning(f"[Q&A] No handler for {message.recipient}, skipping message {message.id}")
                continue

            message.status = MessageStatus.PROCESSING
            try:
                content = await handler(message)
            except Exception as e:
                message.retry_count += 1
                if message.retry_count >= self.max_retries:
                    message.status = MessageStatus.TIMEOUT
                    logger.error(f"[Q&A] Message {message.id} timed out after {self.max_retries} retries: {e}")
                else:
                    message.status = MessageStatus.PENDING
                    logger.warning(f"[Q&A] Retry {message.retry_count}/{self.max_retries} for message {message.id}: {e}")
                continue

            answer = AgentMessage(
                type=MessageType.ANSWER,
                sender=message.recipient,
                recipient=message.sender,
                subject=f"Answer to: {message.subject}",
                content=content,
                priority=message.priority,
                in_response_to=message.id,
                status=MessageStatus.RESOLVED,
            )
            self._exchanges.append(QAExchange(
                sender=message.sender,
                recipient=message.recipient,
                question=message.content,
                answer=content,
            ))
            self.store.resolve_message(message.id, answer)
            processed += 1

        return processed

    def pending_count(self) -> int:
        return len(self.pending_questions())

    def has_pending(self) -> bool:
        return self.pending_count() > 0

    def get_qa_exchanges(self) -> List[QAExchange]:
        return list(self._exchanges)


__all__ = [
    "MessageCoordinator",
    "MessageTimeoutError",
    "MessageHandler",
    "QAExchange",
    "POLL_INTERVAL_SECONDS",
    "ANSWER_TIMEOUT_SECONDS",
    "MAX_RETRIES",
]
