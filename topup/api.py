import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from topup.core.settings import settings
from topup.db import init_db
from topup.routers.health import router as health_router
from topup.routers.auth import router as auth_router
from topup.routers.orders import router as orders_router
from topup.routers.users import router as users_router
from topup.routers.reports import router as reports_router
from topup.services.errors import TopupError

log = logging.getLogger("topup.api")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TopupError)
    async def _topup_error(request: Request, exc: TopupError):
        # 业务错误：返回具体的错误码，前端据此提示
        return JSONResponse(
            status_code=exc.status,
            content=jsonable_encoder({"detail": exc.code, **exc.context}),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        # 内部错误不把细节返回给调用方
        log.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "internal_error"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(orders_router)
    app.include_router(users_router)
    app.include_router(reports_router)

    return app
