import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from shipping import analytics
from shipping.errors import (
    DuplicateTrackingNumber,
    InvalidShipmentAction,
    ShipmentNotFound,
    TrackingAllocationExhausted,
)
from shipping.progress import map_progress, status_label
from shipping.schemas import (
    AllocationOut,
    ShipmentCreated,
    ShipmentIn,
    ShipmentOut,
    ShipmentUpdate,
    StatsOut,
    TrackingOut,
)
from shipping.tracking import TrackingAllocator

logger = logging.getLogger(__name__)

TABLE = "shipments"
MAX_INSERT_ATTEMPTS = 2
REQUIRED_FIELDS = ("customer_name", "origin_state", "destination_state", "estimated_days",
                   "scheduled_delivery", "status")
SEARCH_FIELDS = ("tracking_number", "customer_name", "customer_email", "origin_state", "destination_state")


def estimate_days(pickup: Optional[date], delivery: Optional[date]) -> Optional[int]:
    """Whole days from pickup to delivery, never less than 1."""
    if pickup is None or delivery is None:
        return None
    days = (delivery - pickup).days
    return days if days > 0 else 1


class ShipmentService:
    def __init__(self, store, allocator: Optional[TrackingAllocator] = None, publisher=None,
                 today: Callable[[], date] = date.today, now: Callable[[], datetime] = datetime.now):
        self.store = store
        self.allocator = allocator or TrackingAllocator(store, today=today)
        self.publisher = publisher
        self.today = today
        self.now = now

    def _publish(self, event_type: str, shipment_id):
        if self.publisher is not None:
            self.publisher.publish(TABLE, event_type, shipment_id)

    def allocate(self) -> AllocationOut:
        return self.allocator.allocate()

    def validate(self, candidate: str) -> str:
        return self.allocator.validate(candidate)

    def create(self, payload: ShipmentIn) -> ShipmentCreated:
        values = payload.model_dump(exclude={"tracking_number"})
        if values["scheduled_pickup"] is None:
            values["scheduled_pickup"] = self.today()
        values["estimated_days"] = estimate_days(values["scheduled_pickup"], values["scheduled_delivery"])
        if values["status"] != "delayed":
            values["delay_reason"] = None
        elif not values["delay_reason"]:
            raise InvalidShipmentAction("A delayed shipment needs a delay reason")
        else:
            values["delay_updated_at"] = self.now()

        warnings: List[str] = []
        if payload.tracking_number:
            candidate = payload.tracking_number
        else:
            allocation = self.allocator.allocate()
            candidate = allocation.tracking_number
            warnings.extend(allocation.warnings)

        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            tracking_number = self.allocator.validate(candidate)
            stamp = self.now()
            try:
                shipment = self.store.insert({**values, "tracking_number": tracking_number,
                                              "created_at": stamp, "updated_at": stamp})
                break
            except DuplicateTrackingNumber:
                if attempt == MAX_INSERT_ATTEMPTS:
                    logger.error("Tracking number %s collided on attempt %s, giving up", tracking_number, attempt)
                    raise TrackingAllocationExhausted(attempt, tracking_number)
                allocation = self.allocator.allocate()
                candidate = allocation.tracking_number
                warnings.extend(allocation.warnings)
                warnings.append(f"Tracking number {tracking_number} was already taken; "
                                f"regenerated as {candidate}")
                logger.warning("Tracking number %s already exists, retrying with %s", tracking_number, candidate)

        logger.info("Created shipment %s (%s)", shipment.id, shipment.tracking_number)
        self._publish("INSERT", shipment.id)
        return ShipmentCreated(**shipment.model_dump(), warnings=warnings)

    def get(self, shipment_id: int) -> ShipmentOut:
        shipment = self.store.get(shipment_id)
        if shipment is None:
            raise ShipmentNotFound(shipment_id)
        return shipment

    def track(self, tracking_number: str) -> TrackingOut:
        key = (tracking_number or "").strip().upper()
        shipment = self.store.get_by_tracking_number(key) if key else None
        if shipment is None:
            raise ShipmentNotFound(key)
        return TrackingOut(shipment=shipment, status_label=status_label(shipment.status),
                           progress=map_progress(shipment.status))

    def list(self, search: Optional[str] = None, status: Optional[str] = None) -> List[ShipmentOut]:
        shipments = self.store.list()
        if status and status != "all":
            shipments = [s for s in shipments if s.status == status]
        if search:
            needle = search.strip().lower()
            shipments = [
                s for s in shipments
                if any(needle in (getattr(s, f) or "").lower() for f in SEARCH_FIELDS)
            ]
        return shipments

    def stats(self) -> StatsOut:
        shipments = self.store.list()

        def count(status):
            return sum(1 for s in shipments if s.status == status)

        on_time = sum(
            1 for s in shipments
            if s.status == "delivered" and s.actual_delivery and s.actual_delivery <= s.scheduled_delivery
        )
        return StatsOut(
            total=len(shipments),
            on_time=on_time,
            delayed=count("delayed"),
            delivered=count("delivered"),
            in_transit=count("in_transit"),
            pickup_pending=count("Pickup Pending"),
            pickup_complete=count("Pick-up-complete"),
        )

    def analytics(self, range_: str = "30d") -> dict:
        return analytics.shipment_analytics(self.store.list(), range_, self.today())

    def _update(self, shipment_id: int, values: dict) -> ShipmentOut:
        values["updated_at"] = self.now()
        shipment = self.store.update(shipment_id, values)
        if shipment is None:
            raise ShipmentNotFound(shipment_id)
        self._publish("UPDATE", shipment_id)
        return shipment

    def mark_delayed(self, shipment_id: int, reason: str, new_delivery_date: Optional[date] = None) -> ShipmentOut:
        reason = (reason or "").strip()
        if not reason:
            raise InvalidShipmentAction("A delay reason is required")
        current = self.get(shipment_id)
        values = {"status": "delayed", "delay_reason": reason, "delay_updated_at": self.now()}
        if new_delivery_date:
            values["scheduled_delivery"] = new_delivery_date
            days = estimate_days(current.scheduled_pickup, new_delivery_date)
            if days is not None:
                values["estimated_days"] = days
        logger.info("Shipment %s marked delayed: %s", shipment_id, reason)
        return self._update(shipment_id, values)

    def clear_delay(self, shipment_id: int) -> ShipmentOut:
        return self._update(shipment_id, {"status": "in_transit", "delay_reason": None, "delay_updated_at": None})

    def update_delivery_date(self, shipment_id: int, scheduled_delivery: date) -> ShipmentOut:
        current = self.get(shipment_id)
        values = {"scheduled_delivery": scheduled_delivery}
        days = estimate_days(current.scheduled_pickup, scheduled_delivery)
        if days is not None:
            values["estimated_days"] = days
        return self._update(shipment_id, values)

    def change_status(self, shipment_id: int, status: str) -> ShipmentOut:
        current = self.get(shipment_id)
        if status == "delayed" and not current.delay_reason:
            raise InvalidShipmentAction("Marking a shipment delayed needs a reason; use the delay action")
        values = {"status": status}
        if status == "delivered":
            values["actual_delivery"] = self.today()
            values["scheduled_delivery"] = self.today()
        if current.status == "delayed" and status != "delayed":
            values["delay_reason"] = None
            values["delay_updated_at"] = None
        return self._update(shipment_id, values)

    def edit(self, shipment_id: int, changes: ShipmentUpdate) -> ShipmentOut:
        current = self.get(shipment_id)
        values = changes.model_dump(exclude_unset=True)
        for key in REQUIRED_FIELDS:
            if key in values and values[key] is None:
                raise InvalidShipmentAction(f"{key} cannot be cleared")
        if "scheduled_pickup" in values or "scheduled_delivery" in values:
            pickup = values.get("scheduled_pickup", current.scheduled_pickup)
            delivery = values.get("scheduled_delivery", current.scheduled_delivery)
            days = estimate_days(pickup, delivery)
            if days is not None:
                values["estimated_days"] = days
        status = values.get("status", current.status)
        if status == "delivered" and current.status != "delivered":
            values["actual_delivery"] = values.get("actual_delivery") or self.today()
            values.setdefault("scheduled_delivery", values["actual_delivery"])
        if status == "delayed":
            reason = values.get("delay_reason", current.delay_reason)
            if not reason:
                raise InvalidShipmentAction("A delayed shipment needs a delay reason")
            if "delay_reason" in values:
                values["delay_updated_at"] = self.now()
        else:
            values["delay_reason"] = None
            values["delay_updated_at"] = None
        return self._update(shipment_id, values)

    def delete(self, shipment_id: int) -> None:
        if not self.store.delete(shipment_id):
            raise ShipmentNotFound(shipment_id)
        logger.info("Deleted shipment %s", shipment_id)
        self._publish("DELETE", shipment_id)
