# Overview: Domain error taxonomy shared by stores, workflow services, and routes.

"""
Tableside error taxonomy

Stores raise these; workflow services catch them at their boundary and turn
them into a failed ServiceResult; routes map the stable `code` to an HTTP
status.

- ValidationError:        bad or missing input (400)
- NotFoundError:          entity/transaction missing, wrong tenant, or inactive (404)
- InvalidTransitionError: status change not allowed by the state machine (409)
- FraudDeclineError:      risk assessment recommended decline (402)
- GatewayError:           payment processor refused or failed (402)
- PersistenceError:       database write/read failed (500)
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for errors that cross the service boundary."""

    code = "service_error"
    retryable = False

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "error_code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    code = "validation_error"


class NotFoundError(ServiceError):
    code = "not_found"


class InvalidTransitionError(ServiceError):
    """Raised when a status change violates the owning state machine."""

    code = "invalid_transition"


class FraudDeclineError(ServiceError):
    code = "fraud_declined"


class GatewayError(ServiceError):
    code = "gateway_error"
    retryable = True


class PersistenceError(ServiceError):
    code = "persistence_error"
    retryable = True


HTTP_STATUS_BY_CODE = {
    ValidationError.code: 400,
    NotFoundError.code: 404,
    InvalidTransitionError.code: 409,
    FraudDeclineError.code: 402,
    GatewayError.code: 402,
    PersistenceError.code: 500,
    ServiceError.code: 500,
}
