import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.authentication import BaseUser
from starlette.middleware.authentication import AuthenticationMiddleware

SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

SERVICES_ROOT = SRC_DIR.parents[1]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from application.commands import CreateOrderCommand, IdentifiedCommand, OrderItemDTO, SetPaidOrderStatusCommand
from application.handlers import (
    DEFAULT_PAYMENT_VALIDATION_DELAY_SECONDS,
    CreateOrderCommandHandler,
    SetPaidOrderStatusCommandHandler,
)
from application.idempotency import IdentifiedCommandHandler
from domain import OrderingDomainError
from middleware.authentication import TrustedHeaderAuthBackend
from middleware.user_tracking import UserTrackingMiddleware
from order_metrics import OrderingMetrics
from persistence.database import get_session, init_db
from persistence.models import Order
from persistence.repository import SqlAlchemyOrderRepository, SqlAlchemyRequestManager
from shared.observability.privacy import mask_user_id
from shared.observability.telemetry import (
    CORRELATION_ID_HEADER,
    bind_request_context,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
)

logger = logging.getLogger(__name__)

PAYMENT_DELAY_ENV = "PAYMENT_VALIDATION_DELAY_SECONDS"


class NotAuthenticatedError(Exception):
    """Raised by route dependencies when the caller carries no authenticated principal."""


def _payment_delay_seconds() -> float:
    raw_value = os.getenv(PAYMENT_DELAY_ENV)
    if raw_value is None or raw_value.strip() == "":
        return DEFAULT_PAYMENT_VALIDATION_DELAY_SECONDS
    try:
        return max(0.0, float(raw_value))
    except ValueError:
        logger.warning({"event": "invalid_payment_delay", "value": raw_value})
        return DEFAULT_PAYMENT_VALIDATION_DELAY_SECONDS


app = FastAPI(title="Ordering API")

# Registration order matters: the last middleware added runs first, so
# authentication resolves the principal before user tracking reads it.
app.add_middleware(UserTrackingMiddleware)
app.add_middleware(AuthenticationMiddleware, backend=TrustedHeaderAuthBackend())


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = ensure_request_id(request)
    token = bind_request_context(request_id)
    try:
        response = await call_next(request)
        response.headers.setdefault(CORRELATION_ID_HEADER, request_id)
        return response
    finally:
        reset_request_context(token)


# Instrument last so the server span wraps every stage registered above.
telemetry_settings = setup_telemetry(app, service_name="ordering-api")
app.state.metrics = OrderingMetrics.from_global_provider()
app.state.payment_delay_seconds = _payment_delay_seconds()


def error_response(status_code: int, error_code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
    return error_response(401, "not_authenticated", "Authentication is required.")


@app.exception_handler(OrderingDomainError)
async def ordering_domain_error_handler(request: Request, exc: OrderingDomainError) -> JSONResponse:
    return error_response(400, "invalid_order", str(exc))


def require_user(request: Request) -> BaseUser:
    user = request.scope.get("user")
    if user is None or not user.is_authenticated:
        raise NotAuthenticatedError()
    return user


def get_metrics(request: Request) -> OrderingMetrics:
    return request.app.state.metrics


def _command_request_id(request: Request) -> Optional[str]:
    # Only a client-supplied id can identify a retried command; generated ids never repeat.
    return request.headers.get(CORRELATION_ID_HEADER)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize persistence before serving requests."""
    init_db()


@app.get("/health")
def health_check() -> dict:
    """Reports ordering API uptime so orchestrators can confirm this entrypoint is available."""
    return {
        "status": "ok",
        "service": "ordering-api",
        "telemetry_enabled": telemetry_settings.enabled,
    }


class OrderItemPayload(BaseModel):
    product_id: int
    product_name: str
    unit_price: float
    discount: float = 0.0
    units: int = 1


class CreateOrderPayload(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None
    items: List[OrderItemPayload] = Field(default_factory=list)


@app.post("/api/orders", response_model=None)
async def create_order(
    payload: CreateOrderPayload,
    request: Request,
    user: BaseUser = Depends(require_user),
    db: Session = Depends(get_session),
    metrics: OrderingMetrics = Depends(get_metrics),
) -> Dict[str, Any] | JSONResponse:
    """Places an order for the authenticated caller; retries with the same x-request-id are applied once."""
    request_id = _command_request_id(request)
    if not request_id:
        return error_response(400, "request_id_required", f"The {CORRELATION_ID_HEADER} header is required.")

    command = CreateOrderCommand(
        user_id=user.identity,
        user_name=user.display_name,
        order_items=[
            OrderItemDTO(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                discount=item.discount,
                units=item.units,
            )
            for item in payload.items
        ],
        street=payload.street,
        city=payload.city,
        state=payload.state,
        country=payload.country,
        zip_code=payload.zip_code,
    )
    handler = IdentifiedCommandHandler(
        CreateOrderCommandHandler(SqlAlchemyOrderRepository(db), metrics),
        SqlAlchemyRequestManager(db),
    )
    accepted = await handler.handle(IdentifiedCommand(command=command, request_id=request_id))
    if not accepted:
        return error_response(500, "order_not_saved", "The order could not be saved.")

    logger.info(
        {
            "event": "create_order_accepted",
            "request_id": request_id,
            "user_id": mask_user_id(user.identity),
        }
    )
    return {"status": "accepted", "request_id": request_id}


@app.put("/api/orders/{order_number}/pay", response_model=None)
async def set_order_paid(
    order_number: int,
    request: Request,
    user: BaseUser = Depends(require_user),
    db: Session = Depends(get_session),
    metrics: OrderingMetrics = Depends(get_metrics),
) -> Dict[str, Any] | JSONResponse:
    """Runs payment validation for an order and marks it paid."""
    request_id = _command_request_id(request)
    if not request_id:
        return error_response(400, "request_id_required", f"The {CORRELATION_ID_HEADER} header is required.")

    handler = IdentifiedCommandHandler(
        SetPaidOrderStatusCommandHandler(
            SqlAlchemyOrderRepository(db),
            metrics,
            payment_delay_seconds=request.app.state.payment_delay_seconds,
        ),
        SqlAlchemyRequestManager(db),
    )
    paid = await handler.handle(
        IdentifiedCommand(command=SetPaidOrderStatusCommand(order_number=order_number), request_id=request_id)
    )
    if not paid:
        return error_response(404, "order_not_found", "Order not found.")
    return {"order_number": order_number, "status": "paid"}


@app.get("/api/orders/{order_number}", response_model=None)
async def get_order(
    order_number: int,
    user: BaseUser = Depends(require_user),
    db: Session = Depends(get_session),
) -> Dict[str, Any] | JSONResponse:
    """Returns an order owned by the authenticated caller."""
    order = await SqlAlchemyOrderRepository(db).get(order_number)
    if order is None or order.user_id != user.identity:
        return error_response(404, "order_not_found", "Order not found.")
    return _serialize_order(order)


def _serialize_order(order: Order) -> Dict[str, Any]:
    return {
        "order_number": order.id,
        "status": order.status,
        "address": {
            "street": order.street,
            "city": order.city,
            "state": order.state,
            "country": order.country,
            "zip_code": order.zip_code,
        },
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "unit_price": item.unit_price,
                "discount": item.discount,
                "units": item.units,
            }
            for item in order.order_items
        ],
        "total": order.total_value,
    }
