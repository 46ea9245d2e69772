"""
EventHub Planning Service
Venue domain models.

Models:
    - Venue: a physical site
    - VenueArea: bookable sub-area of a venue (optional)
    - VenueDefaultReviewer: reviewer auto-assigned to submissions for a venue
"""


from eventhub.models import db, utcnow


class Venue(db.Model):
    __tablename__ = "venues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.String(300), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow)

    areas = db.relationship(
        "VenueArea", backref="venue", lazy="select",
        cascade="all, delete-orphan", order_by="VenueArea.name",
    )

    def to_dict(self, include_areas=False):
        d = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
        }
        if include_areas:
            d["areas"] = [a.to_dict() for a in self.areas]
        return d

    def __repr__(self):
        return f"<Venue {self.id}: {self.name}>"


class VenueArea(db.Model):
    __tablename__ = "venue_areas"

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(
        db.Integer, db.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(150), nullable=False)
    capacity = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "name": self.name,
            "capacity": self.capacity,
        }

    def __repr__(self):
        return f"<VenueArea {self.id}: {self.name}>"


class VenueDefaultReviewer(db.Model):
    """Reviewer picked automatically when an event at the venue is submitted."""

    __tablename__ = "venue_default_reviewers"
    __table_args__ = (
        db.UniqueConstraint("venue_id", "reviewer_id", name="uq_venue_default_reviewer"),
    )

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(
        db.Integer, db.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    reviewer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow)
