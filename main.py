import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from pymongo.database import Database

from auth import Identity, RoleLookup, TokenVerifier
from catalog import ProductLedger
from checkout import CheckoutService, PaymentClaim
from config import Settings, setup_logging
from database import ensure_indexes, get_database
from errors import Forbidden, OrderNotFound, StoreError, Unauthorized
from notifications import OrderMailer
from orders import OrderWriter
from payments import PaymentGateway
from pricing import CartLine
from schemas import Address

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler talks to, built once per app"""
    db: Database
    ledger: ProductLedger
    orders: OrderWriter
    checkout: CheckoutService
    tokens: TokenVerifier
    roles: RoleLookup
    mailer: OrderMailer

    @classmethod
    def from_settings(cls, settings: Settings, db: Optional[Database] = None,
                      gateway: Optional[PaymentGateway] = None,
                      mailer: Optional[OrderMailer] = None) -> "Services":
        db = db if db is not None else get_database(settings)
        ledger = ProductLedger(db)
        orders = OrderWriter(db)
        gateway = gateway or PaymentGateway(settings)
        return cls(
            db=db,
            ledger=ledger,
            orders=orders,
            checkout=CheckoutService(ledger, orders, gateway, currency=settings.currency),
            tokens=TokenVerifier(settings.jwt_secret),
            roles=RoleLookup(db),
            mailer=mailer or OrderMailer(settings),
        )


# Request models
class CartItem(BaseModel):
    product_id: str
    quantity: Any = None
    customization: Optional[str] = None

    def to_line(self) -> CartLine:
        return CartLine(self.product_id, self.quantity, self.customization)

class CreatePaymentRequest(BaseModel):
    items: List[CartItem] = []
    total: Optional[float] = None

class OrderData(BaseModel):
    items: List[CartItem] = []
    total: Optional[float] = None

class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""
    order_data: OrderData
    shipping_address: Optional[Address] = None

class CodOrderRequest(BaseModel):
    items: List[CartItem] = []
    shipping_address: Optional[Address] = None

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: int = Field(..., ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: bool = True
    inventory: Optional[int] = Field(None, ge=0)

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: Optional[bool] = None
    inventory: Optional[int] = Field(None, ge=0)

class StatusUpdate(BaseModel):
    status: str


# Dependencies
bearer_scheme = HTTPBearer(auto_error=False)

def get_services(request: Request) -> Services:
    return request.app.state.services

def optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Optional[Identity]:
    return services.tokens.verify(credentials.credentials if credentials else None)

def require_identity(identity: Optional[Identity] = Depends(optional_identity)) -> Identity:
    if identity is None:
        raise Unauthorized()
    return identity

def require_admin(
    identity: Optional[Identity] = Depends(optional_identity),
    services: Services = Depends(get_services),
) -> Identity:
    if identity is None:
        raise Unauthorized()
    if not services.roles.is_admin(identity):
        raise Forbidden()
    return identity


# Error rendering
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})

async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()})
    message = f"Invalid or missing fields: {', '.join(f for f in fields if f)}" if fields else "Invalid payload"
    return JSONResponse(status_code=400, content={"error": "invalid_payload", "message": message})

async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Internal server error"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(app.state.services.db)
    yield


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if services is None:
        setup_logging(settings.log_level)
        services = Services.from_settings(settings)

    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    register_routes(app)
    return app


def register_routes(app: FastAPI):

    # Health
    @app.get("/")
    def root():
        return {"message": "Storefront API running"}

    @app.get("/health")
    def health(services: Services = Depends(get_services)):
        response = {"backend": "ok", "database": "ok"}
        try:
            services.db.command("ping")
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            response["database"] = "unavailable"
        return response

    # Checkout
    @app.post("/api/orders/create-payment")
    def create_payment(
        body: CreatePaymentRequest,
        identity: Optional[Identity] = Depends(optional_identity),
        services: Services = Depends(get_services),
    ):
        return services.checkout.create_payment(
            identity, [i.to_line() for i in body.items], declared_total=body.total
        )

    @app.post("/api/orders/verify-payment")
    def verify_payment(
        body: VerifyPaymentRequest,
        background_tasks: BackgroundTasks,
        identity: Optional[Identity] = Depends(optional_identity),
        services: Services = Depends(get_services),
    ):
        claim = PaymentClaim(body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature)
        order, created = services.checkout.verify_payment(
            identity,
            claim,
            [i.to_line() for i in body.order_data.items],
            declared_total=body.order_data.total,
            shipping_address=body.shipping_address,
        )
        if created:
            background_tasks.add_task(services.mailer.order_placed, order, identity.email)
        return {"success": True, "order_id": order["id"], "message": "Order placed successfully"}

    @app.post("/api/orders/cod")
    def place_cod_order(
        body: CodOrderRequest,
        background_tasks: BackgroundTasks,
        identity: Optional[Identity] = Depends(optional_identity),
        services: Services = Depends(get_services),
    ):
        order = services.checkout.place_cod_order(
            identity, [i.to_line() for i in body.items], body.shipping_address
        )
        background_tasks.add_task(services.mailer.order_placed, order, identity.email)
        return {"success": True, "order_id": order["id"], "message": "Order placed successfully"}

    # Orders
    @app.get("/api/orders")
    def my_orders(identity: Identity = Depends(require_identity), services: Services = Depends(get_services)):
        return {"orders": services.orders.list_for_user(identity.uid)}

    @app.get("/api/orders/{order_id}")
    def order_detail(
        order_id: str,
        identity: Identity = Depends(require_identity),
        services: Services = Depends(get_services),
    ):
        order = services.orders.get(order_id)
        if order["user_id"] != identity.uid and not services.roles.is_admin(identity):
            raise OrderNotFound(order_id)
        return {"order": order}

    # Admin: products
    @app.post("/api/admin/products")
    def create_product(
        body: ProductCreate,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        product = services.ledger.create(body.model_dump())
        return {"id": product["id"], "product": product}

    @app.patch("/api/admin/products/{product_id}")
    def update_product(
        product_id: str,
        body: ProductUpdate,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        product = services.ledger.update(product_id, body.model_dump(exclude_none=True))
        return {"id": product["id"], "product": product}

    @app.delete("/api/admin/products/{product_id}")
    def deactivate_product(
        product_id: str,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        services.ledger.deactivate(product_id)
        return {"success": True, "message": "Product deactivated"}

    @app.delete("/api/admin/products/{product_id}/purge")
    def purge_product(
        product_id: str,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        services.ledger.purge(product_id)
        return {"success": True, "message": "Product deleted"}

    # Admin: orders
    @app.get("/api/admin/orders")
    def admin_orders(
        limit: Optional[int] = None,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        return {"orders": services.orders.list_recent(limit)}

    @app.get("/api/admin/orders/{order_id}")
    def admin_order_detail(
        order_id: str,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        return {"order": services.orders.get(order_id)}

    @app.patch("/api/admin/orders/{order_id}")
    def admin_update_order(
        order_id: str,
        body: StatusUpdate,
        admin: Identity = Depends(require_admin),
        services: Services = Depends(get_services),
    ):
        return {"order": services.orders.update_status(order_id, body.status)}


app = create_app()
