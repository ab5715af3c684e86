import random
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from shipping.errors import DuplicateTrackingNumber, StoreError
from shipping.schemas import ShipmentOut
from shipping.service import ShipmentService
from shipping.store import SqlShipmentStore
from shipping.tracking import TrackingAllocator

TODAY = date(2026, 10, 18)
NOW = datetime(2026, 10, 18, 9, 30)


def today():
    return TODAY


def now():
    return NOW


class FakeStore:
    """In-memory stand-in for the storage handle with scriptable failures."""

    def __init__(self, tracking_numbers=(), rpc=None, rpc_error=False, query_error=False, collisions=0):
        self.tracking_numbers = list(tracking_numbers)
        self.rpc = list(rpc) if isinstance(rpc, (list, tuple)) else rpc
        self.rpc_error = rpc_error
        self.query_error = query_error
        self.collisions = collisions
        self.inserted = []
        self.rpc_calls = 0
        self.queries = []

    def next_tracking_id(self):
        self.rpc_calls += 1
        if self.rpc_error:
            raise StoreError("function get_next_tracking_id() does not exist")
        if isinstance(self.rpc, list):
            return self.rpc.pop(0) if self.rpc else None
        return self.rpc

    def tracking_numbers_like(self, prefix):
        self.queries.append(prefix)
        if self.query_error:
            raise StoreError("connection reset")
        return [tn for tn in self.tracking_numbers if tn.startswith(prefix)]

    def insert(self, values):
        if self.collisions:
            self.collisions -= 1
            raise DuplicateTrackingNumber(values["tracking_number"])
        row = ShipmentOut(id=len(self.inserted) + 1, **values)
        self.inserted.append(row)
        self.tracking_numbers.append(row.tracking_number)
        return row


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, table, event_type, record_id):
        self.events.append((table, event_type, record_id))
        return True


@pytest.fixture
def engine():
    return create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


@pytest.fixture
def sql_store(engine):
    return SqlShipmentStore(engine, today=today)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(sql_store, publisher):
    allocator = TrackingAllocator(sql_store, today=today, rng=random.Random(7))
    return ShipmentService(sql_store, allocator, publisher, today=today, now=now)


@pytest.fixture
def shipment_payload():
    return {
        "customer_name": "John Smith",
        "customer_email": "john@example.com",
        "customer_phone": "+1 (555) 123-4567",
        "origin_state": "Texas",
        "origin_address": "123 Main St, Austin",
        "destination_state": "Ohio",
        "destination_address": "456 Oak Ave, Columbus",
        "scheduled_pickup": "2026-10-18",
        "scheduled_delivery": "2026-10-23",
    }
