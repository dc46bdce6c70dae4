from __future__ import annotations

from ..extensions import db
from ..event_state import resolve_event_phase
from ..time_utils import to_utc_z, utcnow


class Event(db.Model):
    """
    A fair. The lifecycle phase is derived (see event_state); only the
    explicit closed flag is persisted.
    """
    __tablename__ = "events"
    __table_args__ = (
        db.CheckConstraint("start_date < end_date", name="ck_events_dates_ordered"),
        db.CheckConstraint(
            "commission_association_bps BETWEEN 0 AND 10000",
            name="ck_events_commission_association_range",
        ),
        db.CheckConstraint(
            "commission_seller_bps BETWEEN 0 AND 10000",
            name="ck_events_commission_seller_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    location = db.Column(db.String(200), nullable=False)

    start_date = db.Column(db.DateTime, nullable=False, index=True)
    end_date = db.Column(db.DateTime, nullable=False)

    # Basis points: 1000 = 10%
    commission_association_bps = db.Column(db.Integer, nullable=False, default=1000)
    commission_seller_bps = db.Column(db.Integer, nullable=False, default=500)

    is_closed = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Event id={self.id} name={self.name!r} closed={self.is_closed}>"

    def to_dict(self, clock=None) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "commission_association_bps": self.commission_association_bps,
            "commission_seller_bps": self.commission_seller_bps,
            "is_closed": self.is_closed,
            "status": resolve_event_phase(self, clock),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
