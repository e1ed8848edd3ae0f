# engine_py/src/lowcard_engine/errors.py

from typing import Any, Optional


class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")

# Specific error codes
NO_ROOM_NAME = "NO_ROOM_NAME"
NO_PLAYER_NAME = "NO_PLAYER_NAME"
INVALID_EVENT = "INVALID_EVENT"
ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"

ERROR_TEXTS = {
    NO_ROOM_NAME: "Room name is required",
    NO_PLAYER_NAME: "Player name is required",
}

class ActionResult:
    """Outcome of an engine or registry operation.

    ``success`` is False both for rejected requests (``error_code`` set,
    reported to the caller) and for silently ignored ones (no code).
    """

    def __init__(
        self,
        success: bool,
        state: Any = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        data: Any = None,
    ):
        self.success = success
        self.state = state
        self.error_code = error_code
        self.error_message = error_message
        self.data = data

    @classmethod
    def ok(cls, state: Any = None, data: Any = None) -> 'ActionResult':
        return cls(True, state=state, data=data)

    @classmethod
    def error(cls, error_code: str, error_message: Optional[str] = None) -> 'ActionResult':
        return cls(False, error_code=error_code,
                   error_message=error_message or ERROR_TEXTS.get(error_code, error_code))

    @classmethod
    def ignored(cls) -> 'ActionResult':
        return cls(False)

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def __repr__(self) -> str:
        return f"ActionResult(success={self.success}, error_code={self.error_code!r})"
