"""InkwellError envelope and the exception types shared across the service.

Every error reported to a client follows a consistent JSON shape so the UI
can render an inline message and the backend logs remain machine-parseable.

Error codes
-----------
E_CONFIG_MISSING    A provider credential is absent.
E_UPSTREAM_FAILED   The model provider returned a non-success status.
E_TTS_FAILED        The speech provider returned a non-success status.
E_NOTHING_TO_UNDO   No edit event exists for the paragraph.
E_NOT_FOUND         A referenced record does not exist.
E_TURN_FAILED       Any other failure while processing a chat turn.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    E_CONFIG_MISSING = "E_CONFIG_MISSING"
    E_UPSTREAM_FAILED = "E_UPSTREAM_FAILED"
    E_TTS_FAILED = "E_TTS_FAILED"
    E_NOTHING_TO_UNDO = "E_NOTHING_TO_UNDO"
    E_NOT_FOUND = "E_NOT_FOUND"
    E_TURN_FAILED = "E_TURN_FAILED"


class ConfigurationError(Exception):
    """Raised when a required setting (usually a provider key) is missing."""


class UpstreamError(Exception):
    """A provider answered with a non-success HTTP status."""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} {status_code}: {body}")


class NothingToUndoError(LookupError):
    """No ``edit_paragraph`` event with a before-snapshot exists."""


class NotFoundError(LookupError):
    """A record addressed by id does not exist."""


@dataclass
class InkwellError:
    code: str
    message: str
    recoverable: bool = True
    session_id: int | None = None
    details: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": "error",
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "session_id": self.session_id,
        }
        if self.details:
            d["details"] = self.details
        return d

    def to_frame(self) -> str:
        """Encode as a single ``data:`` frame for the chat stream."""
        return f"data: {json.dumps(self.to_dict())}\n\n"


def error_from_exception(exc: BaseException, session_id: int | None = None) -> InkwellError:
    """Map an exception raised during a turn onto the error envelope."""
    if isinstance(exc, ConfigurationError):
        return InkwellError(ErrorCode.E_CONFIG_MISSING, str(exc), recoverable=False, session_id=session_id)
    if isinstance(exc, UpstreamError):
        code = ErrorCode.E_TTS_FAILED if exc.provider == "ElevenLabs" else ErrorCode.E_UPSTREAM_FAILED
        return InkwellError(code, str(exc), session_id=session_id, details={"status": exc.status_code})
    return InkwellError(ErrorCode.E_TURN_FAILED, str(exc) or exc.__class__.__name__, session_id=session_id)


async def send_error(websocket: WebSocket, error: InkwellError) -> None:
    """Serialize *error* and send it as a JSON message on *websocket*.

    Send failures are logged at debug level (the socket may already be closed).
    """
    try:
        await websocket.send_json(error.to_dict())
        logger.warning(
            "[InkwellError] Sent %s to client: %s (session=%s)",
            error.code,
            error.message,
            error.session_id,
        )
    except Exception as exc:
        logger.debug("[InkwellError] Failed to send error to client: %s", exc)
