"""
AI Use-Case Governance Platform
Platform metadata model.

Models:
    - MetadataConfig: singleton row holding admin-editable JSON blobs
      (TOM phase configuration, capability transition configuration).
"""

from datetime import datetime, timezone

from aigov.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class MetadataConfig(db.Model):
    """Single-row store for platform-wide configuration documents."""

    __tablename__ = "metadata_config"

    id = db.Column(db.Integer, primary_key=True)
    tom_config = db.Column(db.JSON, nullable=True)
    capability_transition_config = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @classmethod
    def get_or_create(cls) -> "MetadataConfig":
        """Return the singleton row, creating it (flushed) if absent."""
        row = cls.query.order_by(cls.id).first()
        if row is None:
            row = cls()
            db.session.add(row)
            db.session.flush()
        return row

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tom_config": self.tom_config,
            "capability_transition_config": self.capability_transition_config,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<MetadataConfig {self.id}>"
