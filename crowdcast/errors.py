"""
CrowdCast Exceptions.

Closed error taxonomy shared by every component:
- IngestionError: a malformed crowd point (skipped, never fatal)
- ForecastBackendError: remote forecasting failed (degrades to fallback)
- PersistenceError: durable store write failed (surfaced, not retried)
- NotificationDeliveryError: a channel send failed (retried, then dropped)
- AlertNotFoundError / InvalidAlertTransitionError: lifecycle misuse
"""

from enum import Enum, StrEnum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Application error codes."""

    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    CONFLICT = "E1003"

    INGESTION_ERROR = "E2000"

    FORECAST_BACKEND_ERROR = "E3000"

    PERSISTENCE_ERROR = "E4000"

    NOTIFICATION_DELIVERY_ERROR = "E5000"


class ForecastFailureReason(StrEnum):
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    UNAVAILABLE = "unavailable"


class CrowdCastError(Exception):
    """Base exception for CrowdCast."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details or None,
            }
        }


class IngestionError(CrowdCastError):
    """A crowd point could not be parsed or binned."""

    def __init__(self, message: str, point: Any = None):
        super().__init__(
            message=message,
            code=ErrorCode.INGESTION_ERROR,
            status_code=422,
        )
        self.point = point


class ForecastBackendError(CrowdCastError):
    """The remote forecasting backend could not produce a forecast."""

    def __init__(self, reason: ForecastFailureReason, message: str):
        super().__init__(
            message=message,
            code=ErrorCode.FORECAST_BACKEND_ERROR,
            status_code=502,
            details={"reason": reason.value},
        )
        self.reason = reason


class PersistenceError(CrowdCastError):
    """
    A write to the durable store failed.

    The in-memory object that failed to persist (an alert or a batch)
    remains valid and is attached as ``record``.
    """

    def __init__(self, message: str, record: Any = None):
        super().__init__(
            message=message,
            code=ErrorCode.PERSISTENCE_ERROR,
            status_code=503,
        )
        self.record = record

    @property
    def alert(self) -> Any:
        return self.record


class NotificationDeliveryError(CrowdCastError):
    """A notification channel failed to deliver an alert."""

    def __init__(self, channel: str, alert_id: str, message: str = "delivery failed"):
        super().__init__(
            message=f"{channel}: {message}",
            code=ErrorCode.NOTIFICATION_DELIVERY_ERROR,
            status_code=502,
            details={"channel": channel, "alert_id": alert_id},
        )
        self.channel = channel
        self.alert_id = alert_id


class AlertNotFoundError(CrowdCastError):
    """No active alert with the given id."""

    def __init__(self, alert_id: str):
        super().__init__(
            message=f"Active alert '{alert_id}' not found",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"alert_id": alert_id},
        )
        self.alert_id = alert_id


class InvalidAlertTransitionError(CrowdCastError):
    """The requested lifecycle transition is not allowed from the alert's state."""

    def __init__(self, alert_id: str, action: str, reason: str):
        super().__init__(
            message=f"Cannot {action} alert '{alert_id}': {reason}",
            code=ErrorCode.CONFLICT,
            status_code=409,
            details={"alert_id": alert_id, "action": action},
        )
        self.alert_id = alert_id
        self.action = action
