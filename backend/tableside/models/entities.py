from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import decode_field_value


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Entity(db.Model):
    """
    Generic business object (product, order session, order item, customer...).

    Only the columns every entity shares live here; everything else is a
    DynamicAttribute row. entity_type is fixed at creation.
    """
    __tablename__ = "entities"
    __table_args__ = (
        db.Index("ix_entities_org_type_created", "organization_id", "entity_type", "created_at"),
        db.Index("ix_entities_entity_code", "entity_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid_str)
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    entity_type = db.Column(db.String(64), nullable=False)
    entity_name = db.Column(db.String(255), nullable=False)
    entity_code = db.Column(db.String(64), nullable=False)

    # Logical delete
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    attributes = db.relationship(
        "DynamicAttribute",
        backref="entity",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_name": self.entity_name,
            "entity_code": self.entity_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DynamicAttribute(db.Model):
    """One typed field on an Entity; unique per (entity, field_name)."""
    __tablename__ = "dynamic_attributes"
    __table_args__ = (
        db.UniqueConstraint("entity_id", "field_name", name="uq_dynamic_attributes_entity_field"),
        # Supports the order item -> session lookup (field_name='session_id', field_value=<id>)
        db.Index("ix_dynamic_attributes_field_lookup", "field_name", "field_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_id = db.Column(
        db.String(36),
        db.ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    field_name = db.Column(db.String(128), nullable=False)
    field_value = db.Column(db.String(1024), nullable=True)
    field_type = db.Column(db.String(16), nullable=False, default="text")
    is_encrypted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def value(self):
        return decode_field_value(self.field_value, self.field_type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "field_name": self.field_name,
            "field_value": self.field_value,
            "field_type": self.field_type,
            "is_encrypted": self.is_encrypted,
            "updated_at": to_utc_z(self.updated_at),
        }
