"""
EventHub Planning Service
User model.

Identity itself is owned by the upstream authenticator; this table mirrors
the profile fields the planning workflow needs (role, email, managed venue).
"""


from eventhub.models import db, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = {"venue_manager", "reviewer", "central_planner", "executive"}
REVIEWER_ROLES = {"reviewer", "central_planner"}


class User(db.Model):
    """Platform user with a single planning role."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    full_name = db.Column(db.String(150), nullable=True)
    role = db.Column(db.String(30), nullable=False, default="venue_manager",
                     comment="venue_manager | reviewer | central_planner | executive")
    venue_id = db.Column(
        db.Integer, db.ForeignKey("venues.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Venue managed by a venue_manager",
    )

    created_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or f"User {self.id}"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "venue_id": self.venue_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id} [{self.role}]>"
