"""
Team Resource Planner
Import bookkeeping models.

Models:
    - DuplicateMatch: imported title that looked similar to an existing
      initiative, awaiting a confirm / reject decision
"""

from datetime import datetime, timezone

from app.models import db


class DuplicateMatch(db.Model):
    __tablename__ = "duplicate_matches"

    id = db.Column(db.Integer, primary_key=True)
    source_type = db.Column(db.String(30), nullable=False, comment="miro")
    source_title = db.Column(db.String(500), nullable=False)
    matched_initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=True,
    )
    similarity_score = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="pending", comment="pending | confirmed | rejected")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    matched_initiative = db.relationship("Initiative")

    def to_dict(self):
        return {
            "id": self.id,
            "source_type": self.source_type,
            "source_title": self.source_title,
            "matched_initiative_id": self.matched_initiative_id,
            "similarity_score": self.similarity_score,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }

    def __repr__(self):
        return f"<DuplicateMatch {self.id}: '{self.source_title}' ~ {self.matched_initiative_id}>"
