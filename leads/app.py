import logging
from datetime import date, datetime
from typing import Callable, List, Literal, Optional
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, create_model, field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session
from leads.models import Base, ContactSubmission, ConsultationRequest, PartnerApplication
from shipping.analytics import RANGES, lead_analytics
from shipping.config import Settings, configure_logging, load_settings, make_engine
from shipping.events import ChangePublisher

logger = logging.getLogger(__name__)

ContactStatus = Literal["new", "read", "replied", "in_progress", "resolved", "archived"]
ConsultationStatus = Literal["pending", "contacted", "scheduled", "completed", "cancelled"]
PartnerStatus = Literal["new", "reviewed", "approved", "rejected", "on_hold", "contacted"]

class FormIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("*")
    @classmethod
    def blank_to_none(cls, v):
        return None if v == "" else v

class ContactIn(FormIn):
    name: str = Field(..., min_length=1, examples=["Jane Doe"])
    email: str = Field(..., min_length=1, examples=["jane@example.com"])
    phone: str = Field(..., min_length=1, examples=["+1 (555) 987-6543"])
    company: Optional[str] = None
    subject: str = Field(..., min_length=1, examples=["Freight quote"])
    department: str = Field(..., min_length=1, examples=["sales"])
    urgency: Literal["low", "normal", "high", "urgent"] = "normal"
    message: str = Field(..., min_length=1)
    source: str = "contact_page"

class ContactOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    phone: str
    company: Optional[str]
    subject: str
    department: str
    urgency: str
    message: str
    source: str
    status: str
    created_at: datetime
    updated_at: datetime

class ConsultationIn(FormIn):
    name: str = Field(..., min_length=1, examples=["Jane Doe"])
    email: str = Field(..., min_length=1, examples=["jane@example.com"])
    phone: Optional[str] = None
    company: Optional[str] = None
    service_type: Optional[str] = Field(None, examples=["FTL"])
    message: Optional[str] = None
    preferred_date: Optional[date] = None
    source: str = "website"

class ConsultationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    phone: Optional[str]
    company: Optional[str]
    service_type: Optional[str]
    message: Optional[str]
    preferred_date: Optional[date]
    source: str
    status: str
    created_at: datetime
    updated_at: datetime

class PartnerIn(FormIn):
    company_name: str = Field(..., min_length=1, examples=["Acme Hauling"])
    contact_name: str = Field(..., min_length=1, examples=["Sam Lee"])
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    partner_type: str = Field(..., min_length=1, examples=["carrier"])
    years_in_business: Optional[int] = Field(None, ge=0)
    fleet_size: Optional[int] = Field(None, ge=0)
    service_areas: Optional[str] = None
    message: Optional[str] = None

class PartnerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    company_name: str
    contact_name: str
    email: str
    phone: str
    partner_type: str
    years_in_business: Optional[int]
    fleet_size: Optional[int]
    service_areas: Optional[str]
    message: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime

# path -> (table model, input schema, output schema, status type, default status, search fields)
FORMS = {
    "contact-submissions": (ContactSubmission, ContactIn, ContactOut, ContactStatus, "new",
                            ("name", "email", "company", "subject", "message")),
    "consultation-requests": (ConsultationRequest, ConsultationIn, ConsultationOut, ConsultationStatus, "pending",
                              ("name", "email", "company", "service_type", "message")),
    "partner-applications": (PartnerApplication, PartnerIn, PartnerOut, PartnerStatus, "new",
                             ("company_name", "contact_name", "email", "partner_type", "service_areas")),
}

def register_form(app: FastAPI, engine, publisher: ChangePublisher, now: Callable[[], datetime],
                  path: str, model, schema_in, schema_out, status_type, default_status, search_fields):
    table = model.__tablename__

    StatusUpdate = create_model(f"{model.__name__}StatusUpdate", status=(status_type, ...))
    BulkStatusUpdate = create_model(f"{model.__name__}BulkStatusUpdate",
                                    ids=(List[int], Field(..., min_length=1)), status=(status_type, ...))

    def publish(event_type, record_id):
        if publisher is not None:
            publisher.publish(table, event_type, record_id)

    @app.post(f"/{path}", response_model=schema_out, status_code=201, name=f"submit_{table}")
    def submit(payload: schema_in):
        with Session(engine) as s:
            stamp = now()
            row = model(**payload.model_dump(), status=default_status, created_at=stamp, updated_at=stamp)
            s.add(row)
            s.commit()
            s.refresh(row)
            logger.info("New %s submission %s", table, row.id)
            publish("INSERT", row.id)
            return row

    @app.get(f"/{path}", response_model=List[schema_out], name=f"list_{table}")
    def list_rows(status: Optional[str] = None, q: Optional[str] = None):
        with Session(engine) as s:
            stmt = select(model).order_by(model.created_at.desc(), model.id.desc())
            if status and status != "all":
                stmt = stmt.where(model.status == status)
            rows = list(s.scalars(stmt))
        if q:
            needle = q.strip().lower()
            rows = [r for r in rows if any(needle in (getattr(r, f) or "").lower() for f in search_fields)]
        return rows

    @app.get(f"/{path}/{{row_id}}", response_model=schema_out, name=f"get_{table}")
    def get_row(row_id: int):
        with Session(engine) as s:
            row = s.get(model, row_id)
            if not row:
                raise HTTPException(status_code=404, detail="Not found")
            return row

    @app.put(f"/{path}/{{row_id}}/status", response_model=schema_out, name=f"status_{table}")
    def update_status(row_id: int, body: StatusUpdate):
        with Session(engine) as s:
            row = s.get(model, row_id)
            if not row:
                raise HTTPException(status_code=404, detail="Not found")
            row.status = body.status
            row.updated_at = now()
            s.commit()
            s.refresh(row)
            publish("UPDATE", row_id)
            return row

    @app.post(f"/{path}/bulk-status", name=f"bulk_status_{table}")
    def bulk_status(body: BulkStatusUpdate):
        with Session(engine) as s:
            rows = list(s.scalars(select(model).where(model.id.in_(body.ids))))
            stamp = now()
            for row in rows:
                row.status = body.status
                row.updated_at = stamp
            s.commit()
            updated = [row.id for row in rows]
        for row_id in updated:
            publish("UPDATE", row_id)
        return {"updated": len(updated), "ids": updated}

    @app.delete(f"/{path}/{{row_id}}", status_code=204, name=f"delete_{table}")
    def delete_row(row_id: int):
        with Session(engine) as s:
            row = s.get(model, row_id)
            if not row:
                raise HTTPException(status_code=404, detail="Not found")
            s.delete(row)
            s.commit()
        publish("DELETE", row_id)
        return Response(status_code=204)

def create_app(engine=None, publisher: Optional[ChangePublisher] = None, settings: Optional[Settings] = None,
               now: Callable[[], datetime] = datetime.now, today: Callable[[], date] = date.today) -> FastAPI:
    """Run with ``uvicorn leads.app:create_app --factory``."""
    settings = settings or load_settings(default_db_url="sqlite:///./leads.sqlite")
    configure_logging(settings.log_level)
    if engine is None:
        engine = make_engine(settings.db_url)
        publisher = publisher or ChangePublisher(settings.rabbitmq_url, settings.rabbitmq_exchange,
                                                 settings.events_enabled)
    Base.metadata.create_all(engine)

    app = FastAPI(title="Leads Service", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    for path, form in FORMS.items():
        register_form(app, engine, publisher, now, path, *form)

    @app.get("/analytics/leads")
    def leads_analytics(range: str = "30d"):
        if range not in RANGES:
            raise HTTPException(status_code=400, detail="range must be one of 7d, 30d, 90d")
        result = {}
        with Session(engine) as s:
            for model in (ContactSubmission, ConsultationRequest, PartnerApplication):
                rows = list(s.scalars(select(model)))
                result[model.__tablename__] = lead_analytics(rows, range, today(),
                                                             with_source=hasattr(model, "source"))
        return result

    return app
