"""
EventHub Planning Service
Post-event debrief model.

One row per event, written when the event is completed and editable
afterwards. Takings are stored as NUMERIC(12, 2) and read back as floats;
the uplift figures are derived on read and never stored.
"""


from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


class Debrief(db.Model):
    __tablename__ = "debriefs"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.String(36), db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    attendance = db.Column(db.Integer, nullable=True)
    baseline_attendance = db.Column(db.Integer, nullable=True,
                                    comment="Typical attendance for the same slot")
    wet_takings = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    food_takings = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    baseline_wet_takings = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    baseline_food_takings = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    promo_effectiveness = db.Column(db.Integer, nullable=True, comment="1 (poor) to 5 (great)")
    highlights = db.Column(db.Text, nullable=True)
    issues = db.Column(db.Text, nullable=True)
    guest_sentiment_notes = db.Column(db.Text, nullable=True)
    operational_notes = db.Column(db.Text, nullable=True)
    would_book_again = db.Column(db.Boolean, nullable=True)
    next_time_actions = db.Column(db.Text, nullable=True)
    submitted_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # ── Derived takings ──────────────────────────────────────────────────

    @staticmethod
    def _total(*values):
        present = [v for v in values if v is not None]
        return round(sum(present), 2) if present else None

    @property
    def actual_total_takings(self):
        return self._total(self.wet_takings, self.food_takings)

    @property
    def baseline_total_takings(self):
        return self._total(self.baseline_wet_takings, self.baseline_food_takings)

    @property
    def sales_uplift_value(self):
        actual, baseline = self.actual_total_takings, self.baseline_total_takings
        if actual is None or baseline is None:
            return None
        return round(actual - baseline, 2)

    @property
    def sales_uplift_percent(self):
        """Uplift over the baseline in percent; None without a positive baseline."""
        baseline = self.baseline_total_takings
        if not baseline or baseline <= 0 or self.sales_uplift_value is None:
            return None
        return round(self.sales_uplift_value / baseline * 100, 2)

    def to_dict(self):
        return {
            "event_id": self.event_id,
            "attendance": self.attendance,
            "baseline_attendance": self.baseline_attendance,
            "wet_takings": self.wet_takings,
            "food_takings": self.food_takings,
            "baseline_wet_takings": self.baseline_wet_takings,
            "baseline_food_takings": self.baseline_food_takings,
            "promo_effectiveness": self.promo_effectiveness,
            "highlights": self.highlights,
            "issues": self.issues,
            "guest_sentiment_notes": self.guest_sentiment_notes,
            "operational_notes": self.operational_notes,
            "would_book_again": self.would_book_again,
            "next_time_actions": self.next_time_actions,
            "actual_total_takings": self.actual_total_takings,
            "baseline_total_takings": self.baseline_total_takings,
            "sales_uplift_value": self.sales_uplift_value,
            "sales_uplift_percent": self.sales_uplift_percent,
            "submitted_by": self.submitted_by,
            "submitted_at": iso_z(self.submitted_at),
        }

    def __repr__(self):
        return f"<Debrief event={self.event_id}>"
