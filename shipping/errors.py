class ShippingError(Exception):
    """Base class for shipping service errors."""


class StoreError(ShippingError):
    """The storage backend failed to answer a call or query."""


class DuplicateTrackingNumber(StoreError):
    """An insert was rejected by the unique constraint on tracking_number."""

    def __init__(self, tracking_number: str):
        super().__init__(f"Tracking number {tracking_number} already exists")
        self.tracking_number = tracking_number


class SequenceOverflow(ShippingError):
    """The yearly tracking sequence ran past its upper bound."""

    def __init__(self, year: int, sequence: int):
        super().__init__(
            f"Tracking sequence for {year} is exhausted ({sequence} > 999); "
            "using an emergency tracking number"
        )
        self.year = year
        self.sequence = sequence


class TrackingValidationError(ShippingError):
    """A tracking number failed validation and must be regenerated."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class TrackingAllocationExhausted(ShippingError):
    """Every insert attempt collided with an existing tracking number."""

    def __init__(self, attempts: int, last_tracking_number: str):
        super().__init__(
            f"Tracking number collided {attempts} times (last: {last_tracking_number}). "
            "Please retry the submission."
        )
        self.attempts = attempts
        self.last_tracking_number = last_tracking_number


class ShipmentNotFound(ShippingError):
    def __init__(self, key):
        super().__init__(f"Shipment {key} not found")
        self.key = key


class InvalidShipmentAction(ShippingError):
    """The requested change is not allowed for the shipment's current state."""
