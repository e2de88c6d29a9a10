from __future__ import annotations


class ReportError(Exception):
    """Base class for every outcome that aborts a report request."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.message}


class Unauthenticated(ReportError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class Forbidden(ReportError):
    status_code = 403

    def __init__(self, message: str = "Forbidden", *, denied: list[str] | None = None) -> None:
        super().__init__(message)
        self.denied = list(denied or [])

    def to_detail(self) -> dict:
        detail = super().to_detail()
        if self.denied:
            detail["denied"] = self.denied
        return detail


class ReportValidationError(ReportError):
    status_code = 400


class StoreFailure(ReportError):
    status_code = 500

    def __init__(self, message: str = "Report data store unavailable") -> None:
        super().__init__(message)
