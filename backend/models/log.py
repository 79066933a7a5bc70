from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


# One storefront event written by utils.audit.write_log: logins, cart edits,
# checkouts, cancellations and back-office changes. Read by GET /logs.
class Log(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    # Kept when the account goes away; the entry then has no actor
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    action = Column(String(50), nullable=False)       # e.g. ORDER_PLACE, PRODUCT_UPDATE
    resource = Column(String(50), nullable=False)     # orders, products, cart, auth, ...
    status = Column(String(20), nullable=False, default="SUCCESS", index=True)
    ip = Column(String(64), nullable=True)
    meta = Column(JSON, nullable=False, default=dict)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        Index("ix_logs_resource_action", "resource", "action"),
    )

    @property
    def actor_email(self):
        return self.user.email if self.user else None
