"""
Online Store — FastAPI エントリーポイント

HTTP ゲートウェイ。認証済みの呼び出し元 ID を受け取り、
ライフサイクルエンジンと各ストアの操作にそのまま対応づける。
業務エラーはここで HTTP ステータスに変換する。

┌──────────┐  HTTP   ┌──────────────┐        ┌──────────────┐
│ Gateway  │ ──────▶ │ Lifecycle    │ ─────▶ │ Catalog /    │
│ (FastAPI)│         │ Engine       │        │ Order Ledger │
└──────────┘         └──────┬───────┘        └──────────────┘
                            │ コミット後
                     ┌──────▼───────┐  Pub/Sub  ┌────────────┐
                     │ Publisher    │ ────────▶ │   Redis    │
                     └──────────────┘           └─────┬──────┘
                     ┌──────────────┐  購読           │
                     │ Event Router │ ◀───────────────┘
                     └──────────────┘

呼び出し元の認証は前段の認証エッジが行い、X-User-Id ヘッダで渡される。
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging
from .database import create_engine, init_schema, seed_sample_products, session_factory
from .errors import (
    EmailTaken,
    InsufficientStock,
    InvalidCredentials,
    InvalidInput,
    NotFound,
    TransientInfra,
)
from .lifecycle import OrderLifecycleEngine
from .models import Credentials, Order, OrderRequest, Product, ProductRequest, User
from .products import ProductService
from .protocols import BusTransport
from .publisher import EventPublisher, RedisTransport
from .router import InboundEventRouter
from .subscriber import run_subscriber
from .users import UserDirectory

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    NotFound: 404,
    InsufficientStock: 409,
    InvalidInput: 400,
    EmailTaken: 409,
    InvalidCredentials: 401,
    TransientInfra: 503,
}


def create_app(
    settings: Settings | None = None,
    transport: BusTransport | None = None,
) -> FastAPI:
    """
    アプリケーションを組み立てる。

    transport を渡した場合は Redis に接続せず、受信側の購読も行わない
    （テストやローカル実行用）。
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        engine = create_engine(settings.database_url)
        if settings.create_schema:
            await init_schema(engine)
        if settings.seed_sample_data:
            seeded = await seed_sample_products(engine)
            if seeded:
                logger.info("Seeded %d sample products", seeded)
        sessions = session_factory(engine)

        redis_conn: aioredis.Redis | None = None
        bus = transport
        if bus is None:
            redis_conn = aioredis.from_url(settings.redis_url, decode_responses=True)
            bus = RedisTransport(redis_conn)

        publisher = EventPublisher(bus, timeout=settings.publish_timeout)
        app.state.lifecycle = OrderLifecycleEngine(sessions, publisher)
        app.state.products = ProductService(sessions, publisher)
        app.state.users = UserDirectory(sessions, publisher)
        app.state.router = InboundEventRouter(app.state.lifecycle)

        shutdown_event = asyncio.Event()
        subscriber_task = None
        if redis_conn is not None:
            subscriber_task = asyncio.create_task(
                run_subscriber(settings.redis_url, app.state.router, shutdown_event)
            )
        try:
            yield
        finally:
            shutdown_event.set()
            if subscriber_task is not None:
                results = await asyncio.gather(subscriber_task, return_exceptions=True)
                if isinstance(results[0], Exception):
                    logger.error("Subscriber stopped with an error: %r", results[0])
            if redis_conn is not None:
                await redis_conn.aclose()
            await engine.dispose()

    app = FastAPI(title="Online Store", lifespan=lifespan)

    for error, status in _STATUS_BY_ERROR.items():
        app.add_exception_handler(error, _error_handler(status))

    app.include_router(_api_routes(), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "online-store"}

    return app


def _error_handler(status: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status, content={"error": str(exc)})
    return handler


# ── Dependencies ─────────────────────────────────

def caller_id(x_user_id: int | None = Header(default=None)) -> int:
    """認証エッジが検証済みの呼び出し元 ID"""
    if x_user_id is None:
        raise HTTPException(401, "User not authenticated")
    return x_user_id


def lifecycle(request: Request) -> OrderLifecycleEngine:
    return request.app.state.lifecycle


def products(request: Request) -> ProductService:
    return request.app.state.products


def users(request: Request) -> UserDirectory:
    return request.app.state.users


# ── Routes ───────────────────────────────────────

def _api_routes() -> APIRouter:
    api = APIRouter()

    # 認証 (誰でも呼べる)
    @api.post("/register", status_code=201, response_model=User)
    async def register(req: Credentials, directory: UserDirectory = Depends(users)):
        return await directory.register(req.email, req.password)

    @api.post("/login", response_model=User)
    async def login(req: Credentials, directory: UserDirectory = Depends(users)):
        return await directory.verify(req.email, req.password)

    # 商品 (閲覧は誰でも、書き込みは認証済みのみ)
    @api.get("/products", response_model=list[Product])
    async def list_products(service: ProductService = Depends(products)):
        return await service.list_products()

    @api.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: int, service: ProductService = Depends(products)):
        return await service.get_product(product_id)

    @api.post("/products", status_code=201, response_model=Product)
    async def create_product(
        req: ProductRequest,
        _user: int = Depends(caller_id),
        service: ProductService = Depends(products),
    ):
        return await service.create_product(req)

    @api.put("/products/{product_id}", response_model=Product)
    async def update_product(
        product_id: int,
        req: ProductRequest,
        _user: int = Depends(caller_id),
        service: ProductService = Depends(products),
    ):
        return await service.update_product(product_id, req)

    # 注文 (認証済みのみ、自分の注文だけが見える)
    @api.post("/orders", status_code=201, response_model=Order)
    async def create_order(
        req: OrderRequest,
        user_id: int = Depends(caller_id),
        engine: OrderLifecycleEngine = Depends(lifecycle),
    ):
        return await engine.create_order(user_id, req.product_id, req.quantity)

    @api.get("/orders", response_model=list[Order])
    async def list_orders(
        user_id: int = Depends(caller_id),
        engine: OrderLifecycleEngine = Depends(lifecycle),
    ):
        return await engine.list_orders(user_id)

    @api.get("/orders/{order_id}", response_model=Order)
    async def get_order(
        order_id: int,
        user_id: int = Depends(caller_id),
        engine: OrderLifecycleEngine = Depends(lifecycle),
    ):
        return await engine.get_order(order_id, user_id)

    return api


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("online_store.main:app", host="0.0.0.0", port=8080)
