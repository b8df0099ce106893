from __future__ import annotations

from ..extensions import db
from restoflow.time_utils import to_utc_z, utcnow


class SystemLog(db.Model):
    """
    Platform audit trail.

    IMMUTABLE: rows are created and eventually deleted in bulk by the
    retention sweeper, never updated. Retention depends on level:
    info/warning 30 days, error 90 days, critical kept.
    """
    __tablename__ = "system_logs"
    __table_args__ = (
        db.Index("ix_system_logs_level_created", "level", "created_at"),
        db.Index("ix_system_logs_action", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.String(16), nullable=False, default="info")
    action = db.Column(db.String(64), nullable=False)
    message = db.Column(db.String(512), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "level": self.level,
            "action": self.action,
            "message": self.message,
            "payload": self.payload,
            "user_id": self.user_id,
            "restaurant_id": self.restaurant_id,
            "created_at": to_utc_z(self.created_at),
        }
