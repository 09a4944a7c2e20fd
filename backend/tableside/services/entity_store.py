# Overview: Service-layer operations for the generic entity store; entities plus typed dynamic attributes.

"""
Generic Entity Store

Every business object (product, order session, order item, customer) is an
Entity row with a handful of shared columns. All other fields are
DynamicAttribute rows keyed by (entity_id, field_name).

RULES:
- entity_type is immutable after creation
- deletion is logical (is_active = False); type listings return active rows only
- attribute writes are upserts: last write wins per (entity, field)
- store functions run inside the caller's transaction; commit=True commits immediately
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import DynamicAttribute, Entity
from ..validation import (
    AttributeValue,
    VALID_FIELD_TYPES,
    encode_field_value,
    infer_field_type,
    normalize_uuid,
    require_text,
)
from .concurrency import flush_or_commit


UPDATABLE_ENTITY_FIELDS = {"entity_name", "entity_code", "is_active"}


# =============================================================================
# ENTITIES
# =============================================================================

def create_entity(
    organization_id: str,
    entity_type: str,
    entity_name: str,
    entity_code: str,
    *,
    entity_id: str | None = None,
    is_active: bool = True,
    commit: bool = False,
) -> Entity:
    """
    Create a new entity.

    Raises:
        ValidationError: organization, type, name or code missing
        PersistenceError: duplicate id or other integrity failure
    """
    entity = Entity(
        organization_id=require_text(organization_id, "organization_id", max_length=64),
        entity_type=require_text(entity_type, "entity_type", max_length=64),
        entity_name=require_text(entity_name, "entity_name", max_length=255),
        entity_code=require_text(entity_code, "entity_code", max_length=64),
        is_active=bool(is_active),
    )
    if entity_id:
        entity.id = normalize_uuid(entity_id, "entity_id")

    db.session.add(entity)
    flush_or_commit(commit=commit, action=f"create {entity_type} entity")
    return entity


def find_entity(entity_id: str, organization_id: str | None = None) -> Entity | None:
    if not entity_id:
        return None
    q = db.session.query(Entity).filter_by(id=entity_id)
    if organization_id is not None:
        q = q.filter_by(organization_id=organization_id)
    return q.first()


def get_entity(
    entity_id: str,
    organization_id: str,
    *,
    entity_type: str | None = None,
    active_only: bool = True,
) -> Entity:
    """Like find_entity, but missing / other tenant / wrong type / inactive all raise NotFoundError."""
    entity = find_entity(entity_id, organization_id)
    label = entity_type or "entity"
    if entity is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    if entity_type is not None and entity.entity_type != entity_type:
        raise NotFoundError(f"{label} {entity_id} not found")
    if active_only and not entity.is_active:
        raise NotFoundError(f"{label} {entity_id} is not active")
    return entity


def find_entities_by_type(
    organization_id: str,
    entity_type: str,
    *,
    limit: int | None = None,
) -> list[Entity]:
    """Active entities of a type, newest first."""
    q = (
        db.session.query(Entity)
        .filter_by(organization_id=organization_id, entity_type=entity_type, is_active=True)
        .order_by(Entity.created_at.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def find_entities_by_attribute(
    organization_id: str,
    entity_type: str,
    field_name: str,
    value: Any,
    *,
    field_type: str | None = None,
) -> list[Entity]:
    """Active entities whose attribute `field_name` equals `value` (indexed lookup)."""
    encoded = encode_field_value(value, field_type or infer_field_type(value))
    return (
        db.session.query(Entity)
        .join(DynamicAttribute, DynamicAttribute.entity_id == Entity.id)
        .filter(
            Entity.organization_id == organization_id,
            Entity.entity_type == entity_type,
            Entity.is_active.is_(True),
            DynamicAttribute.field_name == field_name,
            DynamicAttribute.field_value == encoded,
        )
        .order_by(Entity.created_at.asc())
        .all()
    )


def update_entity(
    entity_id: str,
    organization_id: str,
    partial: Mapping[str, Any],
    *,
    commit: bool = False,
) -> Entity:
    """Patch name / code / active flag. entity_type cannot change."""
    if "entity_type" in partial:
        raise ValidationError("entity_type cannot be changed after creation")
    unknown = set(partial) - UPDATABLE_ENTITY_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    entity = get_entity(entity_id, organization_id, active_only=False)
    if "entity_name" in partial:
        entity.entity_name = require_text(partial["entity_name"], "entity_name", max_length=255)
    if "entity_code" in partial:
        entity.entity_code = require_text(partial["entity_code"], "entity_code", max_length=64)
    if "is_active" in partial:
        entity.is_active = bool(partial["is_active"])

    flush_or_commit(commit=commit, action="update entity")
    return entity


def deactivate_entity(entity_id: str, organization_id: str, *, commit: bool = False) -> Entity:
    return update_entity(entity_id, organization_id, {"is_active": False}, commit=commit)


# =============================================================================
# DYNAMIC ATTRIBUTES
# =============================================================================

def set_attribute(
    entity_id: str,
    field_name: str,
    value: Any,
    field_type: str | None = None,
    *,
    is_encrypted: bool = False,
    commit: bool = False,
) -> DynamicAttribute:
    """
    Upsert one attribute (last write wins).

    `value` may be an AttributeValue, in which case its kind is used.
    """
    entity = db.session.get(Entity, entity_id)
    if entity is None:
        raise NotFoundError(f"entity {entity_id} not found")

    attr = _upsert_attribute(entity, field_name, value, field_type, is_encrypted)
    flush_or_commit(commit=commit, action=f"set attribute {field_name}")
    return attr


def set_attributes_batch(
    entity_id: str,
    entries: Mapping[str, Any] | Iterable[tuple],
    *,
    commit: bool = False,
) -> list[DynamicAttribute]:
    """
    Upsert several attributes on one entity.

    entries: {field_name: value} (type inferred, or an AttributeValue) or an
    iterable of (field_name, value, field_type) tuples.
    """
    entity = db.session.get(Entity, entity_id)
    if entity is None:
        raise NotFoundError(f"entity {entity_id} not found")

    items = entries.items() if isinstance(entries, Mapping) else entries
    written = []
    for entry in items:
        if len(entry) == 3:
            field_name, value, field_type = entry
        else:
            field_name, value = entry
            field_type = None
        written.append(_upsert_attribute(entity, field_name, value, field_type, False))

    flush_or_commit(commit=commit, action="set attributes")
    return written


def _upsert_attribute(entity: Entity, field_name: str, value: Any, field_type: str | None, is_encrypted: bool) -> DynamicAttribute:
    field_name = require_text(field_name, "field_name", max_length=128)
    if isinstance(value, AttributeValue):
        field_type = value.kind
        value = value.value
    field_type = field_type or infer_field_type(value)
    if field_type not in VALID_FIELD_TYPES:
        raise ValidationError(f"Invalid field_type '{field_type}'")
    encoded = encode_field_value(value, field_type)

    attr = (
        db.session.query(DynamicAttribute)
        .filter_by(entity_id=entity.id, field_name=field_name)
        .first()
    )
    if attr is None:
        attr = DynamicAttribute(
            entity_id=entity.id,
            organization_id=entity.organization_id,
            field_name=field_name,
        )
        try:
            with db.session.begin_nested():
                attr.field_value = encoded
                attr.field_type = field_type
                attr.is_encrypted = is_encrypted
                db.session.add(attr)
            return attr
        except IntegrityError:
            # Concurrent writer inserted the same field first
            attr = (
                db.session.query(DynamicAttribute)
                .filter_by(entity_id=entity.id, field_name=field_name)
                .one()
            )

    attr.field_value = encoded
    attr.field_type = field_type
    attr.is_encrypted = is_encrypted
    return attr


def get_attributes(entity_id: str) -> list[DynamicAttribute]:
    return (
        db.session.query(DynamicAttribute)
        .filter_by(entity_id=entity_id)
        .order_by(DynamicAttribute.field_name.asc())
        .all()
    )


def get_attribute_map(entity_id: str) -> dict[str, Any]:
    """Decoded {field_name: value} for one entity."""
    return {attr.field_name: attr.value for attr in get_attributes(entity_id)}


def get_attribute_maps(entity_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
    """Bulk variant of get_attribute_map: one query for many entities."""
    ids = list(entity_ids)
    maps: dict[str, dict[str, Any]] = {entity_id: {} for entity_id in ids}
    if not ids:
        return maps
    rows = db.session.query(DynamicAttribute).filter(DynamicAttribute.entity_id.in_(ids)).all()
    for attr in rows:
        maps[attr.entity_id][attr.field_name] = attr.value
    return maps
