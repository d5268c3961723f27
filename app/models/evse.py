"""EVSE, connector and QR rate models"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.database import Base


class EVSE(Base):
    """Charging station exposed through a printed QR code"""
    __tablename__ = "evse"

    uid = Column(String(100), primary_key=True)
    qr_code = Column(Integer, unique=True, nullable=False)
    location_id = Column(Integer, nullable=False)
    model = Column(String(100))
    vendor = Column(String(100))
    status = Column(String(50), default="AVAILABLE")  # AVAILABLE, OCCUPIED, OFFLINE
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    connectors = relationship("Connector", back_populates="evse", order_by="Connector.connector_id")
    rates = relationship("EVSEQRRate", back_populates="evse")


class Connector(Base):
    """Connector of an EVSE"""
    __tablename__ = "evse_connectors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    evse_uid = Column(String(100), ForeignKey("evse.uid"), nullable=False)
    connector_id = Column(String(20), nullable=False)
    standard = Column(String(50))
    power_type = Column(String(20))
    max_power = Column(Integer)
    status = Column(String(50), default="AVAILABLE")  # AVAILABLE, RESERVED, CHARGING, OFFLINE
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    evse = relationship("EVSE", back_populates="connectors")


class EVSEQRRate(Base):
    """Price for a block of charging minutes bought through the QR flow"""
    __tablename__ = "evse_qr_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    evse_uid = Column(String(100), ForeignKey("evse.uid"), nullable=False)
    label = Column(String(100))
    charge_mins = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    evse = relationship("EVSE", back_populates="rates")
