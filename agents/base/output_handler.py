# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - OUTPUT HANDLER
# =============================================================================
"""
Output Handler Module

Two concerns shared by every agent:

1. Turning free-text model output into a typed phase result. The model is
   asked to answer with a fenced ```json block; when no JSON can be found
   the result type's total fallback is used instead, so parsing never
   raises.
2. Writing durable artifacts (reports, learnings, context files) with
   atomic temp-file + rename writes.

Output Structure:
    reports/
    ├── POST-MORTEM-<session>.md
    ├── ANALYSIS-<workflow>-<date>.md
    └── ANALYSIS-<workflow>-<date>.json
"""

import json
import logging
import os
import re
import shutil
import tempfile
from typing import Any, Dict, Optional, Type

from orchestrator.results import PhaseResult

logger = logging.getLogger(__name__)


# =============================================================================
# JSON EXTRACTION
# =============================================================================

_JSON_FENCE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```\s*(.*?)```", re.DOTALL)


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Find the first JSON object in model output.

    Tried in order: a ```json fence, any fence, the outermost ``{...}``
    span, then the whole text.

    Returns:
        Parsed object, or None when nothing parses to a dict
    """
    if not text:
        return None

    for pattern in (_JSON_FENCE, _ANY_FENCE):
        for match in pattern.finditer(text):
            parsed = _loads_object(match.group(1).strip())
            if parsed is not None:
                return parsed

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        parsed = _loads_object(text[start:end + 1])
        if parsed is not None:
            return parsed

    return _loads_object(text.strip())


def parse_agent_output(text: str, result_type: Type[PhaseResult]) -> PhaseResult:
    """Typed result from model output; the type's fallback when no JSON is found."""
    data = extract_json(text)
    if data is None:
        logger.debug(f"No JSON in output, using {result_type.__name__} fallback")
        return result_type.fallback(text or "")
    return result_type.from_dict(data)


# =============================================================================
# OUTPUT HANDLER CLASS
# =============================================================================

class OutputHandler:
    """
    Writes artifacts under a base directory.

    Args:
        output_dir: Directory for relative artifact names (created on demand)

    Usage:
        handler = OutputHandler("./reports")
        handler.write_text("POST-MORTEM-session_x.md", report)
        handler.write_json("ANALYSIS-abc-2025-01-01.json", data)
    """

    def __init__(self, output_dir: str = "./reports"):
        self.output_dir = output_dir

    def resolve(self, name: str) -> str:
        return name if os.path.isabs(name) else os.path.join(self.output_dir, name)

    def write_text(self, name: str, content: str) -> str:
        """Write a text artifact; returns its path."""
        path = self.resolve(name)
        self._atomic_write(path, content)
        logger.info(f"Wrote {path}")
        return path

    def write_json(self, name: str, data: Dict[str, Any]) -> str:
        return self.write_text(name, json.dumps(data, indent=2, default=str))

    def read_text(self, name: str) -> str:
        """File contents, or "" when the file does not exist."""
        path = self.resolve(name)
        if not os.path.exists(path):
            return ""
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def _atomic_write(self, path: str, content: str):
        """Write via temp file + rename so readers never see a partial file."""
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=dir_path, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            shutil.move(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "extract_json",
    "parse_agent_output",
    "OutputHandler",
]
