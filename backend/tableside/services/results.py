# Overview: Result envelope returned by workflow services, plus the boundary decorator that builds it.

from __future__ import annotations

import dataclasses
import enum
import functools
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError, ServiceError
from ..extensions import db
from ..time_utils import to_utc_z

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclasses.dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    details: Any = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: ServiceError) -> "ServiceResult[T]":
        return cls(success=False, error=exc.message, error_code=exc.code, details=exc.details)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": to_jsonable(self.data)}
        payload = {"success": False, "error": self.error, "error_code": self.error_code}
        if self.details is not None:
            payload["details"] = to_jsonable(self.details)
        return payload


def to_jsonable(value: Any) -> Any:
    """Dataclasses, Decimals and datetimes to plain JSON types. Money stays exact as a string."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def service_operation(action: str) -> Callable:
    """
    Wrap a workflow operation so it returns a ServiceResult.

    ServiceErrors and database errors roll back the session, get logged, and
    become failed results. Anything else propagates.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., ServiceResult[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult[T]:
            try:
                return ServiceResult.ok(func(*args, **kwargs))
            except ServiceError as exc:
                db.session.rollback()
                logger.warning("%s failed: [%s] %s", action, exc.code, exc.message)
                return ServiceResult.fail(exc)
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.exception("%s failed with a database error", action)
                return ServiceResult.fail(PersistenceError(f"Failed to {action}", details=type(exc).__name__))
        return wrapper
    return decorator
