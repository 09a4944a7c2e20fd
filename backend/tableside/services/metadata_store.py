# Overview: Service-layer operations for the metadata store; JSON annotations on entities and transactions.

from __future__ import annotations

import logging
from typing import Any, Literal

from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError, ValidationError
from ..extensions import db
from ..models import MetadataRecord
from ..validation import require_text
from .concurrency import flush_or_commit

logger = logging.getLogger(__name__)

SUBJECT_ENTITY = "entity"
SUBJECT_TRANSACTION = "transaction"
VALID_SUBJECT_TYPES = {SUBJECT_ENTITY, SUBJECT_TRANSACTION}

WriteMode = Literal["append", "upsert"]


def append_metadata(
    *,
    organization_id: str,
    subject_type: str,
    subject_id: str,
    metadata_type: str,
    metadata_category: str,
    metadata_key: str,
    value: dict[str, Any],
    is_system_generated: bool = True,
    created_by: str | None = None,
    commit: bool = False,
) -> MetadataRecord:
    """
    Insert a new metadata record. Earlier records with the same key are kept,
    so repeated writes build an audit trail.
    """
    record = MetadataRecord(
        organization_id=require_text(organization_id, "organization_id"),
        subject_type=_subject_type(subject_type),
        subject_id=require_text(subject_id, "subject_id"),
        metadata_type=require_text(metadata_type, "metadata_type", max_length=64),
        metadata_category=require_text(metadata_category, "metadata_category", max_length=64),
        metadata_key=require_text(metadata_key, "metadata_key", max_length=64),
        metadata_value=_json_value(value),
        is_system_generated=is_system_generated,
        created_by=created_by,
    )
    db.session.add(record)
    flush_or_commit(commit=commit, action=f"write {metadata_type} metadata")
    return record


def upsert_metadata(
    *,
    organization_id: str,
    subject_type: str,
    subject_id: str,
    metadata_type: str,
    metadata_category: str,
    metadata_key: str,
    value: dict[str, Any],
    is_system_generated: bool = True,
    created_by: str | None = None,
    commit: bool = False,
) -> MetadataRecord:
    """Replace the newest record with the same subject/type/category/key, inserting if none exists."""
    existing = (
        db.session.query(MetadataRecord)
        .filter_by(
            subject_type=subject_type,
            subject_id=subject_id,
            metadata_type=metadata_type,
            metadata_category=metadata_category,
            metadata_key=metadata_key,
        )
        .order_by(MetadataRecord.created_at.desc(), MetadataRecord.id.desc())
        .first()
    )
    if existing is None:
        return append_metadata(
            organization_id=organization_id,
            subject_type=subject_type,
            subject_id=subject_id,
            metadata_type=metadata_type,
            metadata_category=metadata_category,
            metadata_key=metadata_key,
            value=value,
            is_system_generated=is_system_generated,
            created_by=created_by,
            commit=commit,
        )

    existing.metadata_value = _json_value(value)
    existing.is_system_generated = is_system_generated
    if created_by is not None:
        existing.created_by = created_by
    flush_or_commit(commit=commit, action=f"update {metadata_type} metadata")
    return existing


def write_metadata(*, mode: WriteMode = "append", **kwargs) -> MetadataRecord:
    if mode == "append":
        return append_metadata(**kwargs)
    if mode == "upsert":
        return upsert_metadata(**kwargs)
    raise ValidationError(f"Unknown metadata write mode '{mode}'")


def safe_write_metadata(*, mode: WriteMode = "append", **kwargs) -> MetadataRecord | None:
    """
    Metadata write whose failure must not abort the surrounding workflow.

    Runs under a savepoint so a failed insert rolls back alone; the failure is
    logged as a warning and None is returned.
    """
    try:
        with db.session.begin_nested():
            return write_metadata(mode=mode, **kwargs)
    except (PersistenceError, ValidationError, SQLAlchemyError) as exc:
        logger.warning(
            "Non-fatal metadata write failed (%s/%s on %s %s): %s",
            kwargs.get("metadata_type"),
            kwargs.get("metadata_key"),
            kwargs.get("subject_type"),
            kwargs.get("subject_id"),
            exc,
        )
        return None


def read_metadata(
    subject_type: str,
    subject_id: str,
    metadata_type: str | None = None,
    *,
    organization_id: str | None = None,
    metadata_key: str | None = None,
) -> list[MetadataRecord]:
    """Records for a subject, newest first."""
    q = db.session.query(MetadataRecord).filter_by(subject_type=subject_type, subject_id=subject_id)
    if metadata_type is not None:
        q = q.filter_by(metadata_type=metadata_type)
    if metadata_key is not None:
        q = q.filter_by(metadata_key=metadata_key)
    if organization_id is not None:
        q = q.filter_by(organization_id=organization_id)
    return q.order_by(MetadataRecord.created_at.desc(), MetadataRecord.id.desc()).all()


def latest_metadata(
    subject_type: str,
    subject_id: str,
    metadata_type: str,
    metadata_key: str,
) -> dict[str, Any] | None:
    records = read_metadata(subject_type, subject_id, metadata_type, metadata_key=metadata_key)
    return records[0].metadata_value if records else None


def _subject_type(value: str) -> str:
    if value not in VALID_SUBJECT_TYPES:
        raise ValidationError(
            f"Invalid subject_type '{value}'. Must be one of: {', '.join(sorted(VALID_SUBJECT_TYPES))}"
        )
    return value


def _json_value(value: Any) -> dict:
    if not isinstance(value, dict):
        raise ValidationError("metadata value must be a JSON object")
    return value
