"""
Team Resource Planner
Saved PMO export configurations.
"""

import json
from datetime import datetime, timezone

from app.models import db


class PmoExportConfig(db.Model):
    __tablename__ = "pmo_export_config"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    start_week = db.Column(db.Date, nullable=False)
    end_week = db.Column(db.Date, nullable=False)
    include_months = db.Column(db.Text, nullable=True, comment="JSON list of YYYY-MM keys")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "start_week": self.start_week.isoformat() if self.start_week else None,
            "end_week": self.end_week.isoformat() if self.end_week else None,
            "include_months": json.loads(self.include_months) if self.include_months else [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
