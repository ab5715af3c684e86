import logging
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from shipping.config import Settings, configure_logging, load_settings, make_engine
from shipping.errors import (
    InvalidShipmentAction,
    ShipmentNotFound,
    StoreError,
    TrackingAllocationExhausted,
    TrackingValidationError,
)
from shipping.events import ChangePublisher
from shipping.labels import render_label
from shipping.schemas import (
    AllocationOut,
    DelayIn,
    DeliveryDateIn,
    ShipmentAnalytics,
    ShipmentCreated,
    ShipmentIn,
    ShipmentOut,
    ShipmentUpdate,
    StatsOut,
    StatusIn,
    TrackingCandidate,
    TrackingOut,
    ValidationOut,
)
from shipping.service import ShipmentService
from shipping.store import RestShipmentStore, SqlShipmentStore
from shipping.tracking import TrackingAllocator

logger = logging.getLogger(__name__)


def build_service(settings: Settings) -> ShipmentService:
    if settings.backend_url:
        store = RestShipmentStore(settings.backend_url, settings.backend_key)
    else:
        store = SqlShipmentStore(make_engine(settings.db_url), rpc_enabled=settings.tracking_rpc_enabled)
    publisher = ChangePublisher(settings.rabbitmq_url, settings.rabbitmq_exchange, settings.events_enabled)
    return ShipmentService(store, TrackingAllocator(store), publisher)


def create_app(service: Optional[ShipmentService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Composition root. Run with ``uvicorn shipping.app:create_app --factory``."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    if service is None:
        service = build_service(settings)

    app = FastAPI(title="Shipping Service", version="1.0.0")
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ShipmentNotFound)
    def not_found(request: Request, exc: ShipmentNotFound):
        return JSONResponse(status_code=404, content={"detail": "Tracking ID not found" if isinstance(exc.key, str) else "Not found"})

    @app.exception_handler(TrackingValidationError)
    def invalid_tracking(request: Request, exc: TrackingValidationError):
        return JSONResponse(status_code=422, content={"detail": {"code": exc.code, "message": exc.message}})

    @app.exception_handler(TrackingAllocationExhausted)
    def exhausted(request: Request, exc: TrackingAllocationExhausted):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidShipmentAction)
    def invalid_action(request: Request, exc: InvalidShipmentAction):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    def store_unavailable(request: Request, exc: StoreError):
        logger.error("Shipment store failed on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Shipment store unavailable"})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/tracking/next", response_model=AllocationOut)
    def next_tracking_number():
        return service.allocate()

    @app.post("/tracking/validate", response_model=ValidationOut)
    def validate_tracking_number(body: TrackingCandidate):
        return {"tracking_number": service.validate(body.tracking_number), "valid": True}

    @app.get("/track/{tracking_number}", response_model=TrackingOut)
    def track(tracking_number: str):
        return service.track(tracking_number)

    @app.post("/shipments", response_model=ShipmentCreated, status_code=201)
    def create_shipment(payload: ShipmentIn):
        return service.create(payload)

    @app.get("/shipments", response_model=List[ShipmentOut])
    def list_shipments(q: Optional[str] = None, status: Optional[str] = None):
        return service.list(search=q, status=status)

    @app.get("/shipments/stats", response_model=StatsOut)
    def shipment_stats():
        return service.stats()

    @app.get("/shipments/{shipment_id}", response_model=ShipmentOut)
    def get_shipment(shipment_id: int):
        return service.get(shipment_id)

    @app.patch("/shipments/{shipment_id}", response_model=ShipmentOut)
    def edit_shipment(shipment_id: int, changes: ShipmentUpdate):
        return service.edit(shipment_id, changes)

    @app.delete("/shipments/{shipment_id}", status_code=204)
    def delete_shipment(shipment_id: int):
        service.delete(shipment_id)
        return Response(status_code=204)

    @app.post("/shipments/{shipment_id}/delay", response_model=ShipmentOut)
    def mark_delayed(shipment_id: int, body: DelayIn):
        return service.mark_delayed(shipment_id, body.reason, body.new_delivery_date)

    @app.delete("/shipments/{shipment_id}/delay", response_model=ShipmentOut)
    def clear_delay(shipment_id: int):
        return service.clear_delay(shipment_id)

    @app.put("/shipments/{shipment_id}/delivery-date", response_model=ShipmentOut)
    def update_delivery_date(shipment_id: int, body: DeliveryDateIn):
        return service.update_delivery_date(shipment_id, body.scheduled_delivery)

    @app.put("/shipments/{shipment_id}/status", response_model=ShipmentOut)
    def change_status(shipment_id: int, body: StatusIn):
        return service.change_status(shipment_id, body.status)

    @app.get("/shipments/{shipment_id}/label.pdf")
    def shipment_label(shipment_id: int):
        shipment = service.get(shipment_id)
        headers = {"Content-Disposition": f'inline; filename="{shipment.tracking_number}.pdf"'}
        return StreamingResponse(render_label(shipment), headers=headers, media_type="application/pdf")

    @app.get("/analytics/shipments", response_model=ShipmentAnalytics)
    def shipment_analytics(range: str = "30d"):
        if range not in ("7d", "30d", "90d"):
            raise HTTPException(status_code=400, detail="range must be one of 7d, 30d, 90d")
        return service.analytics(range)

    return app
