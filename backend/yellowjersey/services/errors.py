from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ServiceError(Exception):
    """Validation or state failure raised by a service and rendered by the calling route."""

    status: int
    message: str
    extra: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.status}:{self.message}"

    def to_payload(self) -> dict:
        payload = {"ok": False, "error": self.message}
        payload.update(self.extra or {})
        return payload
