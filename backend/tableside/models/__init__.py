# Overview: Model package exports for SQLAlchemy entities.

from .entities import Entity, DynamicAttribute
from .metadata import MetadataRecord
from .transactions import UniversalTransaction, TransactionLine, Sequence, OrderConfirmation

__all__ = [
    "Entity",
    "DynamicAttribute",
    "MetadataRecord",
    "UniversalTransaction",
    "TransactionLine",
    "Sequence",
    "OrderConfirmation",
]
