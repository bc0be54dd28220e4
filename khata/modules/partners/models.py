from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from khata.core.database import Base
from khata.modules.users.models import generate_uuid


class PartnerLink(Base):
    """Directed edge owner -> partner; one per pair"""
    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    partner_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    partner_user = relationship("User", foreign_keys=[partner_user_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("owner_user_id", "partner_user_id", name="uq_partners_owner_partner"),
    )

    def __repr__(self):
        return f"<PartnerLink(owner={self.owner_user_id}, partner={self.partner_user_id})>"
