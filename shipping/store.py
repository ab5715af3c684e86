"""Storage handles for shipments.

Both stores expose the same methods and return ``ShipmentOut`` records, so
the allocator and the service never see ORM objects or raw JSON rows.

``SqlShipmentStore`` keeps shipments in any SQLAlchemy database and emulates
the ``get_next_tracking_id`` procedure with a per-year counter table.
``RestShipmentStore`` talks to the hosted backend's REST API.
"""
import logging
from datetime import date
from typing import Callable, List, Optional

import requests
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shipping.errors import DuplicateTrackingNumber, StoreError
from shipping.models import Base, Shipment, TrackingSequence
from shipping.schemas import ShipmentOut, TrackingRow
from shipping.tracking import MAX_SEQUENCE, PREFIX

logger = logging.getLogger(__name__)


def _is_tracking_conflict(message: str) -> bool:
    return "tracking_number" in (message or "")


class SqlShipmentStore:
    def __init__(self, engine, rpc_enabled: bool = True, today: Callable[[], date] = date.today):
        self.engine = engine
        self.rpc_enabled = rpc_enabled
        self.today = today
        Base.metadata.create_all(engine)

    def next_tracking_id(self) -> Optional[str]:
        if not self.rpc_enabled:
            raise StoreError("get_next_tracking_id is not available in this deployment")
        year = self.today().year
        prefix = f"{PREFIX}{year}"
        try:
            with Session(self.engine) as s:
                seq = s.get(TrackingSequence, year)
                if seq is None:
                    seq = TrackingSequence(year=year, last_value=self._highest_sequence(s, prefix))
                    s.add(seq)
                if seq.last_value >= MAX_SEQUENCE:
                    logger.info("Sequence for %s is exhausted at %s", year, seq.last_value)
                    return None
                seq.last_value += 1
                value = seq.last_value
                s.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"get_next_tracking_id failed: {e}") from e
        return f"{prefix}{value}"

    def _highest_sequence(self, s: Session, prefix: str) -> int:
        highest = 0
        for tn in s.scalars(select(Shipment.tracking_number).where(Shipment.tracking_number.like(f"{prefix}%"))):
            suffix = tn[len(prefix):]
            if suffix.isascii() and suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    def tracking_numbers_like(self, prefix: str) -> List[str]:
        try:
            with Session(self.engine) as s:
                rows = s.scalars(select(Shipment.tracking_number).where(Shipment.tracking_number.like(f"{prefix}%")))
                return [TrackingRow(tracking_number=tn).tracking_number for tn in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"tracking number query failed: {e}") from e

    def insert(self, values: dict) -> ShipmentOut:
        with Session(self.engine) as s:
            shipment = Shipment(**values)
            s.add(shipment)
            try:
                s.commit()
            except IntegrityError as e:
                s.rollback()
                if _is_tracking_conflict(str(e.orig)):
                    raise DuplicateTrackingNumber(values.get("tracking_number")) from e
                raise StoreError(f"insert failed: {e.orig}") from e
            s.refresh(shipment)
            return ShipmentOut.model_validate(shipment)

    def get(self, shipment_id: int) -> Optional[ShipmentOut]:
        with Session(self.engine) as s:
            sh = s.get(Shipment, shipment_id)
            return ShipmentOut.model_validate(sh) if sh else None

    def get_by_tracking_number(self, tracking_number: str) -> Optional[ShipmentOut]:
        with Session(self.engine) as s:
            sh = s.execute(select(Shipment).where(Shipment.tracking_number == tracking_number)).scalar_one_or_none()
            return ShipmentOut.model_validate(sh) if sh else None

    def list(self) -> List[ShipmentOut]:
        with Session(self.engine) as s:
            rows = s.scalars(select(Shipment).order_by(Shipment.created_at.desc(), Shipment.id.desc()))
            return [ShipmentOut.model_validate(sh) for sh in rows]

    def update(self, shipment_id: int, values: dict) -> Optional[ShipmentOut]:
        with Session(self.engine) as s:
            sh = s.get(Shipment, shipment_id)
            if not sh:
                return None
            for key, value in values.items():
                setattr(sh, key, value)
            s.commit()
            s.refresh(sh)
            return ShipmentOut.model_validate(sh)

    def delete(self, shipment_id: int) -> bool:
        with Session(self.engine) as s:
            sh = s.get(Shipment, shipment_id)
            if not sh:
                return False
            s.delete(sh)
            s.commit()
            return True


class RestShipmentStore:
    """Shipments kept by the hosted backend, reached over its REST API."""

    table = "shipments"

    def __init__(self, base_url: str, api_key: str, session: Optional[requests.Session] = None, timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/v1/{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    def _rows(self, r: requests.Response) -> List[ShipmentOut]:
        if r.status_code >= 400:
            raise StoreError(f"backend returned {r.status_code}: {r.text}")
        try:
            return [ShipmentOut.model_validate(row) for row in r.json()]
        except (ValueError, ValidationError) as e:
            raise StoreError(f"unexpected shipment rows from backend: {e}") from e

    def next_tracking_id(self) -> Optional[str]:
        r = self._request("POST", "rpc/get_next_tracking_id", json={})
        if r.status_code != 200:
            raise StoreError(f"get_next_tracking_id returned {r.status_code}: {r.text}")
        try:
            value = r.json()
        except ValueError as e:
            raise StoreError(f"get_next_tracking_id returned invalid JSON: {e}") from e
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def tracking_numbers_like(self, prefix: str) -> List[str]:
        r = self._request("GET", self.table, params={"select": "tracking_number", "tracking_number": f"like.{prefix}*"})
        if r.status_code != 200:
            raise StoreError(f"tracking number query returned {r.status_code}: {r.text}")
        try:
            return [TrackingRow.model_validate(row).tracking_number for row in r.json()]
        except (ValueError, ValidationError) as e:
            raise StoreError(f"unexpected tracking rows from backend: {e}") from e

    def insert(self, values: dict) -> ShipmentOut:
        r = self._request("POST", self.table, json=jsonable_encoder(values),
                          headers={"Prefer": "return=representation"})
        if r.status_code == 409 and _is_tracking_conflict(r.text):
            raise DuplicateTrackingNumber(values.get("tracking_number"))
        rows = self._rows(r)
        if not rows:
            raise StoreError("insert returned no row")
        return rows[0]

    def get(self, shipment_id: int) -> Optional[ShipmentOut]:
        rows = self._rows(self._request("GET", self.table, params={"select": "*", "id": f"eq.{shipment_id}"}))
        return rows[0] if rows else None

    def get_by_tracking_number(self, tracking_number: str) -> Optional[ShipmentOut]:
        rows = self._rows(self._request("GET", self.table,
                                        params={"select": "*", "tracking_number": f"eq.{tracking_number}"}))
        return rows[0] if rows else None

    def list(self) -> List[ShipmentOut]:
        return self._rows(self._request("GET", self.table, params={"select": "*", "order": "created_at.desc"}))

    def update(self, shipment_id: int, values: dict) -> Optional[ShipmentOut]:
        rows = self._rows(self._request("PATCH", self.table, params={"id": f"eq.{shipment_id}"},
                                        json=jsonable_encoder(values),
                                        headers={"Prefer": "return=representation"}))
        return rows[0] if rows else None

    def delete(self, shipment_id: int) -> bool:
        rows = self._rows(self._request("DELETE", self.table, params={"id": f"eq.{shipment_id}"},
                                        headers={"Prefer": "return=representation"}))
        return bool(rows)
