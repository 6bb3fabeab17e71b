from __future__ import annotations


class NoteshelfError(RuntimeError):
    """Base class for errors reported to callers instead of raised through them."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(NoteshelfError):
    pass


class RemoteError(NoteshelfError):
    def __init__(self, reason: str, *, status: int | None = None, detail: str | None = None) -> None:
        super().__init__(reason)
        self.status = status
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.reason}: {self.detail}"
        return self.reason


class ExportError(NoteshelfError):
    pass


class InvalidTransition(ValueError):
    pass
