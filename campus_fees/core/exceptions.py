from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FeeValidationError(ServiceError):
    """Invalid payment selection or fee input. Raised before any gateway call or ledger write."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


INTEGRITY_ERROR_MESSAGE = (
    "Fee records for this student are inconsistent. Please contact the administration office."
)


class DataIntegrityError(ServiceError):
    """Snapshot or customization data that cannot be reconciled. Halts computation for the assignment."""

    def __init__(self, detail: str) -> None:
        super().__init__(INTEGRITY_ERROR_MESSAGE, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.detail = detail

    def __str__(self) -> str:
        return self.detail


class GatewayError(ServiceError):
    """Payment gateway order creation or verification failed."""

    def __init__(self, message: str, status_code: int = status.HTTP_502_BAD_GATEWAY) -> None:
        super().__init__(message, status_code)


class ConcurrencyConflict(ServiceError):
    """Ledger changed between read and write. Caller should re-fetch status and retry."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message or "Fee balances changed while processing this request. Please refresh and try again.",
            status.HTTP_409_CONFLICT,
        )


class InvalidTransitionError(ServiceError):
    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Payment cannot move from '{from_status}' to '{to_status}'",
            status.HTTP_409_CONFLICT,
        )
        self.from_status = from_status
        self.to_status = to_status
