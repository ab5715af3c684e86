from datetime import date, datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Status = Literal[
    "Pickup Pending",
    "Pick-up-complete",
    "in_transit",
    "Out for Delivery",
    "delivered",
    "delayed",
    "cancelled",
]

DATE_FIELDS = ("scheduled_pickup", "scheduled_delivery", "actual_delivery")


def _date_part(value):
    # the hosted backend hands dates back as ISO timestamps
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return value[:10]
    return value


class TrackingRow(BaseModel):
    tracking_number: str


class ShipmentIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    tracking_number: Optional[str] = Field(None, examples=["CF2420261"])
    customer_name: str = Field(..., min_length=1, examples=["John Smith"])
    customer_email: Optional[str] = Field(None, examples=["john@example.com"])
    customer_phone: Optional[str] = Field(None, examples=["+1 (555) 123-4567"])
    origin_state: str = Field(..., min_length=1, examples=["Texas"])
    origin_address: str = Field(..., min_length=1, examples=["123 Main St, Austin, 73301"])
    destination_state: str = Field(..., min_length=1, examples=["Ohio"])
    destination_address: str = Field(..., min_length=1, examples=["456 Oak Ave, Columbus, 43004"])
    scheduled_pickup: Optional[date] = None
    scheduled_delivery: date
    status: Status = "Pickup Pending"
    delay_reason: Optional[str] = None
    current_location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("tracking_number", "customer_email", "customer_phone", "delay_reason",
                     "current_location", "notes")
    @classmethod
    def blank_to_none(cls, v):
        return v or None

    @model_validator(mode="after")
    def delivery_after_pickup(self):
        if self.scheduled_pickup and self.scheduled_delivery < self.scheduled_pickup:
            raise ValueError("scheduled_delivery cannot be before scheduled_pickup")
        return self


class ShipmentUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    customer_name: Optional[str] = Field(None, min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    origin_state: Optional[str] = Field(None, min_length=1)
    origin_address: Optional[str] = None
    destination_state: Optional[str] = Field(None, min_length=1)
    destination_address: Optional[str] = None
    estimated_days: Optional[int] = Field(None, ge=1)
    scheduled_pickup: Optional[date] = None
    scheduled_delivery: Optional[date] = None
    actual_delivery: Optional[date] = None
    status: Optional[Status] = None
    delay_reason: Optional[str] = None
    current_location: Optional[str] = None
    notes: Optional[str] = None


class ShipmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tracking_number: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    origin_state: str
    origin_address: Optional[str] = None
    destination_state: str
    destination_address: Optional[str] = None
    estimated_days: int
    scheduled_pickup: Optional[date] = None
    scheduled_delivery: date
    actual_delivery: Optional[date] = None
    status: str
    delay_reason: Optional[str] = None
    delay_updated_at: Optional[datetime] = None
    current_location: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(*DATE_FIELDS, mode="before")
    @classmethod
    def strip_time(cls, v):
        return _date_part(v)


class ShipmentCreated(ShipmentOut):
    warnings: List[str] = []


class DelayIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(..., min_length=1, examples=["Weather conditions"])
    new_delivery_date: Optional[date] = None


class DeliveryDateIn(BaseModel):
    scheduled_delivery: date


class StatusIn(BaseModel):
    status: Status


class TrackingCandidate(BaseModel):
    tracking_number: str = Field(..., examples=["CF2420261"])


class AllocationOut(BaseModel):
    tracking_number: str
    tier: str
    warnings: List[str] = []


class ValidationOut(BaseModel):
    tracking_number: str
    valid: bool = True


class StageOut(BaseModel):
    id: str
    label: str
    position: int
    is_completed: bool
    is_current: bool
    is_pending: bool


class ProgressOut(BaseModel):
    stages: List[StageOut]
    current_position: int
    progress_percentage: float
    is_delayed: bool


class TrackingOut(BaseModel):
    shipment: ShipmentOut
    status_label: str
    progress: ProgressOut


class StatsOut(BaseModel):
    total: int
    on_time: int
    delayed: int
    delivered: int
    in_transit: int
    pickup_pending: int
    pickup_complete: int


class CountBucket(BaseModel):
    key: str
    count: int


class DailyBucket(BaseModel):
    date: str
    count: int


class ShipmentAnalytics(BaseModel):
    total: int
    by_status: List[CountBucket]
    by_state: List[CountBucket]
    daily_delivered: List[DailyBucket]
