"""SQLAlchemy models for the device state store."""
from datetime import datetime
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from bopomofo.db.database import Base


class Device(Base):
    """Anonymous classroom device tracked by the bpm_device cookie."""
    __tablename__ = "devices"

    id = Column(Text, primary_key=True)  # e.g. "dev_3f2c..."
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_active_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    documents = relationship("DeviceDocument", back_populates="device", cascade="all, delete-orphan")


class DeviceDocument(Base):
    """One persisted JSON document (stats, teacher settings, student, theme) per key."""
    __tablename__ = "device_documents"

    device_id = Column(Text, ForeignKey("devices.id"), primary_key=True)
    key = Column(Text, primary_key=True)  # e.g. "bopomofo_stats_v3"
    value = Column(Text, nullable=True)  # raw JSON; may be corrupt, readers fall back to defaults
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_device_documents_updated', 'device_id', 'updated_at'),
    )

    # Relationships
    device = relationship("Device", back_populates="documents")
