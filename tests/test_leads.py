from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from leads.app import create_app
from shipping.config import Settings

from conftest import RecordingPublisher


@pytest.fixture
def lead_publisher():
    return RecordingPublisher()


@pytest.fixture
def client(engine, lead_publisher):
    app = create_app(engine=engine, publisher=lead_publisher, settings=Settings(events_enabled=False),
                     now=lambda: datetime(2026, 10, 18, 10, 0), today=lambda: date(2026, 10, 18))
    return TestClient(app)


CONTACT = {
    "name": " Jane Doe ",
    "email": "jane@example.com",
    "phone": "+1 555 987 6543",
    "company": "",
    "subject": "Freight quote",
    "department": "sales",
    "message": "Need a quote for 12 pallets.",
}

PARTNER = {
    "company_name": "Acme Hauling",
    "contact_name": "Sam Lee",
    "email": "sam@acme.example",
    "phone": "555-0100",
    "partner_type": "carrier",
    "fleet_size": 14,
}


def test_submit_contact(client, lead_publisher):
    r = client.post("/contact-submissions", json=CONTACT)
    assert r.status_code == 201
    body = r.json()
    assert body["name"] == "Jane Doe"
    assert body["company"] is None
    assert body["status"] == "new"
    assert body["urgency"] == "normal"
    assert body["source"] == "contact_page"
    assert lead_publisher.events == [("contact_submissions", "INSERT", body["id"])]


@pytest.mark.parametrize("field", ["name", "email", "phone", "subject", "department", "message"])
def test_contact_required_fields(client, field):
    r = client.post("/contact-submissions", json={**CONTACT, field: "   "})
    assert r.status_code == 422


def test_consultation_defaults(client):
    r = client.post("/consultation-requests", json={"name": "Kim", "email": "kim@example.com",
                                                     "preferred_date": "2026-11-02"})
    assert r.status_code == 201
    assert r.json()["status"] == "pending"
    assert r.json()["source"] == "website"


def test_status_change_and_filter(client):
    first = client.post("/partner-applications", json=PARTNER).json()
    client.post("/partner-applications", json={**PARTNER, "company_name": "Bolt Freight"})

    r = client.put(f"/partner-applications/{first['id']}/status", json={"status": "approved"})
    assert r.json()["status"] == "approved"
    assert client.put(f"/partner-applications/{first['id']}/status", json={"status": "pending"}).status_code == 422

    approved = client.get("/partner-applications", params={"status": "approved"}).json()
    assert [a["company_name"] for a in approved] == ["Acme Hauling"]
    assert len(client.get("/partner-applications", params={"status": "all"}).json()) == 2
    assert [a["company_name"] for a in client.get("/partner-applications", params={"q": "bolt"}).json()] == ["Bolt Freight"]


def test_bulk_status(client):
    ids = [client.post("/contact-submissions", json=CONTACT).json()["id"] for _ in range(3)]
    r = client.post("/contact-submissions/bulk-status", json={"ids": ids[:2] + [999], "status": "archived"})
    assert r.json() == {"updated": 2, "ids": ids[:2]}
    statuses = {row["id"]: row["status"] for row in client.get("/contact-submissions").json()}
    assert statuses == {ids[0]: "archived", ids[1]: "archived", ids[2]: "new"}


def test_get_and_delete(client, lead_publisher):
    created = client.post("/consultation-requests", json={"name": "Kim", "email": "kim@example.com"}).json()
    assert client.get(f"/consultation-requests/{created['id']}").json()["name"] == "Kim"
    assert client.delete(f"/consultation-requests/{created['id']}").status_code == 204
    assert client.get(f"/consultation-requests/{created['id']}").status_code == 404
    assert lead_publisher.events[-1] == ("consultation_requests", "DELETE", created["id"])


def test_leads_analytics(client):
    client.post("/contact-submissions", json=CONTACT)
    client.post("/partner-applications", json=PARTNER)
    body = client.get("/analytics/leads", params={"range": "7d"}).json()
    contact = body["contact_submissions"]
    assert contact["total"] == 1
    assert contact["by_source"] == [{"key": "contact_page", "count": 1}]
    assert contact["daily_trend"][-1] == {"date": "Oct 18", "count": 1}
    assert "by_source" not in body["partner_applications"]
    assert body["consultation_requests"]["total"] == 0
