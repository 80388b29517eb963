import uuid
from dataclasses import dataclass, field
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """Per-request values passed explicitly to handlers and data stores."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_header(cls, value: Optional[str]) -> "RequestContext":
        if value and value.strip():
            return cls(request_id=value.strip())
        return cls()

    def describe(self, message: str) -> str:
        return f"[{self.request_id}] {message}"


def background() -> RequestContext:
    """Context for work that is not tied to an HTTP request (CLI, startup)."""
    return RequestContext(request_id="background")
