"""
Channel Mapping Model

Links one PMS property to one listing on an external booking channel.
Rows are created by the channel onboarding flows; the reconciliation
engine only reads them.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Index, UniqueConstraint
from ..database import Base


class ChannelMapping(Base):
    """
    One PMS property <-> one channel listing.

    channel_name is the registry key of the connector that serves this
    listing (AIRBNB, BOOKING, ...).
    """
    __tablename__ = "channel_mappings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    channel_name = Column(String(50), nullable=False)

    # Internal PMS property
    internal_property_id = Column(String(36), nullable=False)

    # Listing / room identifier on the channel side
    external_id = Column(String(255), nullable=False)

    organization_id = Column(String(36), nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_channel_mapping_property", "internal_property_id"),
        Index("ix_channel_mapping_active", "is_active", "channel_name"),
        UniqueConstraint("channel_name", "external_id", name="uq_channel_mapping_external"),
    )

    def __repr__(self):
        return f"<ChannelMapping {self.channel_name} property={self.internal_property_id} external={self.external_id}>"
