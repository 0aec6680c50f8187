from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class AdmissionError(AppError):
    """Expected refusal that the UI turns into an upgrade prompt."""

    code = "admission_denied"


class QuotaExceededError(AdmissionError):
    code = "quota_exceeded"


class MonthlyCapExceededError(AdmissionError):
    code = "monthly_cap_exceeded"
