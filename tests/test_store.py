import json
from datetime import date

import pytest
import requests

from shipping.errors import DuplicateTrackingNumber, StoreError
from shipping.store import RestShipmentStore, SqlShipmentStore

from conftest import today


def row(tracking_number, **extra):
    values = {
        "tracking_number": tracking_number,
        "customer_name": "Acme",
        "origin_state": "Texas",
        "destination_state": "Ohio",
        "scheduled_delivery": date(2026, 10, 23),
        "estimated_days": 5,
        "status": "Pickup Pending",
    }
    values.update(extra)
    return values


class TestSqlStore:
    def test_sequence_seeds_from_existing_shipments(self, sql_store):
        sql_store.insert(row("CF2420264"))
        sql_store.insert(row("CF242025900"))
        assert sql_store.next_tracking_id() == "CF2420265"
        assert sql_store.next_tracking_id() == "CF2420266"

    def test_sequence_seed_skips_non_ascii_digits(self, sql_store):
        sql_store.insert(row("CF2420264"))
        sql_store.insert(row("CF242026\u00b2"))
        assert sql_store.next_tracking_id() == "CF2420265"

    def test_sequence_disabled_raises(self, engine):
        store = SqlShipmentStore(engine, rpc_enabled=False, today=today)
        with pytest.raises(StoreError):
            store.next_tracking_id()

    def test_sequence_exhausted_returns_none(self, sql_store):
        sql_store.insert(row("CF242026999"))
        assert sql_store.next_tracking_id() is None

    def test_duplicate_tracking_number(self, sql_store):
        sql_store.insert(row("CF2420261"))
        with pytest.raises(DuplicateTrackingNumber) as exc:
            sql_store.insert(row("CF2420261", customer_name="Other"))
        assert exc.value.tracking_number == "CF2420261"

    def test_tracking_numbers_like(self, sql_store):
        for tn in ("CF2420261", "CF2420262", "CF242025777"):
            sql_store.insert(row(tn))
        assert sorted(sql_store.tracking_numbers_like("CF242026")) == ["CF2420261", "CF2420262"]

    def test_crud(self, sql_store):
        created = sql_store.insert(row("CF2420261"))
        assert sql_store.get(created.id).tracking_number == "CF2420261"
        assert sql_store.get_by_tracking_number("CF2420261").id == created.id
        updated = sql_store.update(created.id, {"status": "in_transit"})
        assert updated.status == "in_transit"
        assert sql_store.delete(created.id) is True
        assert sql_store.get(created.id) is None
        assert sql_store.update(created.id, {"status": "delivered"}) is None
        assert sql_store.delete(created.id) is False


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None and self.text:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


SHIPMENT_ROW = {
    "id": 7,
    "tracking_number": "CF2420267",
    "customer_name": "Acme",
    "origin_state": "Texas",
    "destination_state": "Ohio",
    "estimated_days": 5,
    "scheduled_pickup": "2026-10-18T00:00:00+00:00",
    "scheduled_delivery": "2026-10-23T00:00:00.000Z",
    "status": "in_transit",
    "created_at": "2026-10-18T09:30:00+00:00",
}


def rest_store(*responses):
    session = FakeSession(*responses)
    return RestShipmentStore("https://backend.example.com/", "anon-key", session=session), session


class TestRestStore:
    def test_auth_headers(self):
        _, session = rest_store()
        assert session.headers["apikey"] == "anon-key"
        assert session.headers["Authorization"] == "Bearer anon-key"

    def test_next_tracking_id(self):
        store, session = rest_store(FakeResponse(200, "CF24202612"))
        assert store.next_tracking_id() == "CF24202612"
        method, url, _ = session.calls[0]
        assert (method, url) == ("POST", "https://backend.example.com/rest/v1/rpc/get_next_tracking_id")

    def test_next_tracking_id_null(self):
        store, _ = rest_store(FakeResponse(200, None, text=""))
        assert store.next_tracking_id() is None

    def test_missing_procedure_raises(self):
        store, _ = rest_store(FakeResponse(404, {"message": "Could not find the function"}))
        with pytest.raises(StoreError):
            store.next_tracking_id()

    def test_transport_error_raises_store_error(self):
        store, _ = rest_store(requests.ConnectionError("refused"))
        with pytest.raises(StoreError):
            store.next_tracking_id()

    def test_tracking_numbers_like(self):
        store, session = rest_store(FakeResponse(200, [{"tracking_number": "CF2420261"}, {"tracking_number": "CF2420262"}]))
        assert store.tracking_numbers_like("CF242026") == ["CF2420261", "CF2420262"]
        _, url, kwargs = session.calls[0]
        assert url.endswith("/rest/v1/shipments")
        assert kwargs["params"] == {"select": "tracking_number", "tracking_number": "like.CF242026*"}

    def test_malformed_rows_raise(self):
        store, _ = rest_store(FakeResponse(200, [{"id": 1}]))
        with pytest.raises(StoreError):
            store.tracking_numbers_like("CF242026")

    def test_insert_parses_row(self):
        store, session = rest_store(FakeResponse(201, [SHIPMENT_ROW]))
        created = store.insert({"tracking_number": "CF2420267", "scheduled_delivery": date(2026, 10, 23)})
        assert created.id == 7
        assert created.scheduled_delivery == date(2026, 10, 23)
        assert created.scheduled_pickup == date(2026, 10, 18)
        _, _, kwargs = session.calls[0]
        assert kwargs["json"]["scheduled_delivery"] == "2026-10-23"
        assert kwargs["headers"] == {"Prefer": "return=representation"}

    def test_insert_conflict(self):
        body = {"code": "23505", "message": 'duplicate key value violates unique constraint "shipments_tracking_number_key"'}
        store, _ = rest_store(FakeResponse(409, body))
        with pytest.raises(DuplicateTrackingNumber):
            store.insert({"tracking_number": "CF2420267"})

    def test_get_by_tracking_number_missing(self):
        store, session = rest_store(FakeResponse(200, []))
        assert store.get_by_tracking_number("CF2420299") is None
        assert session.calls[0][2]["params"]["tracking_number"] == "eq.CF2420299"

    def test_delete(self):
        store, session = rest_store(FakeResponse(200, [SHIPMENT_ROW]))
        assert store.delete(7) is True
        assert session.calls[0][0] == "DELETE"
