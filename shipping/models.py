from datetime import date, datetime
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Text, Date, DateTime, CheckConstraint, func
from typing import Optional

Base = declarative_base()

STATUSES = (
    "Pickup Pending",
    "Pick-up-complete",
    "in_transit",
    "Out for Delivery",
    "delivered",
    "delayed",
    "cancelled",
)

class Shipment(Base):
    __tablename__ = "shipments"
    __table_args__ = (
        CheckConstraint("status IN (" + ", ".join(f"'{s}'" for s in STATUSES) + ")", name="status_check"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tracking_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    origin_state: Mapped[str] = mapped_column(String(64))
    origin_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    destination_state: Mapped[str] = mapped_column(String(64))
    destination_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    estimated_days: Mapped[int] = mapped_column(Integer, default=5)
    scheduled_pickup: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    scheduled_delivery: Mapped[date] = mapped_column(Date)
    actual_delivery: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="Pickup Pending")
    delay_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delay_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    current_location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

class TrackingSequence(Base):
    # backs the get_next_tracking_id procedure for SQL deployments
    __tablename__ = "tracking_sequences"
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0)
