from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class MetadataRecord(db.Model):
    """
    Structured JSON annotation attached to an entity or transaction.

    Keyed by (subject_type, subject_id, metadata_type, metadata_category,
    metadata_key). Writers choose append (audit trail) or upsert (latest only).
    """
    __tablename__ = "metadata_records"
    __table_args__ = (
        db.Index(
            "ix_metadata_records_subject",
            "subject_type", "subject_id", "metadata_type", "metadata_key",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)

    # "entity" or "transaction"
    subject_type = db.Column(db.String(32), nullable=False)
    subject_id = db.Column(db.String(36), nullable=False)

    metadata_type = db.Column(db.String(64), nullable=False)
    metadata_category = db.Column(db.String(64), nullable=False)
    metadata_key = db.Column(db.String(64), nullable=False)
    metadata_value = db.Column(db.JSON, nullable=False, default=dict)

    is_system_generated = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "metadata_type": self.metadata_type,
            "metadata_category": self.metadata_category,
            "metadata_key": self.metadata_key,
            "metadata_value": self.metadata_value,
            "is_system_generated": self.is_system_generated,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
