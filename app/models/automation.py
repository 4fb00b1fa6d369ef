"""
QA Test Case Library
Automated test telemetry — read model fed by the CI ingestion pipeline.

The library never creates or edits these rows outside of tests and seed
data; it only reads them for matching and staleness checks.
"""

from datetime import datetime, timezone

from app.models import db


class AutomatedTest(db.Model):
    """
    One automated test as last reported by CI.

    id is the ingestion pipeline's opaque identifier, not a library key.
    """

    __tablename__ = "automated_tests"

    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(500), nullable=False)
    file_path = db.Column(db.String(500), default="")
    team_id = db.Column(db.String(64), nullable=True, index=True)
    last_executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "file_path": self.file_path,
            "team_id": self.team_id,
            "last_executed_at": self.last_executed_at.isoformat() if self.last_executed_at else None,
        }

    def __repr__(self):
        return f"<AutomatedTest {self.id}: {self.title[:30]}>"
