"""Error type raised by the endpoint picker and its canonical codes."""

from __future__ import annotations

UNKNOWN = "Unknown"
BAD_REQUEST = "BadRequest"
INTERNAL = "Internal"
MODEL_SERVER_ERROR = "ModelServerError"
BAD_CONFIGURATION = "BadConfiguration"
INFERENCE_POOL_RESOURCE_EXHAUSTED = "InferencePoolResourceExhausted"


class SchedulingError(Exception):
    """An error carrying a canonical code and a human-readable message."""

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(code, msg)
        self.code = code
        self.msg = msg

    def __str__(self) -> str:
        return f"inference gateway: {self.code} - {self.msg}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchedulingError):
            return NotImplemented
        return (self.code, self.msg) == (other.code, other.msg)

    def __hash__(self) -> int:
        return hash((self.code, self.msg))


def canonical_code(err: BaseException | None) -> str:
    """Return the canonical code of ``err``, or ``UNKNOWN`` for other errors."""
    if isinstance(err, SchedulingError):
        return err.code
    return UNKNOWN