"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import build_payment_runtime, build_pending_store
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.external.cache import shutdown_redis_client


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    store = await build_pending_store()
    runtime = build_payment_runtime(store)
    runtime.start()
    app.state.payment_runtime = runtime
    logger.info("application_started", pending_backend=settings.pending.backend, port=settings.PORT)

    yield

    await runtime.aclose()
    if settings.pending.backend == "redis":
        await shutdown_redis_client()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="M-Pesa STK push payments with callback reconciliation and mailing-list enrollment",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 2. Request ID中间件（最先执行，为后续中间件提供request_id和client_ip）
app.add_middleware(RequestIDMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message="ok",
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """健康检查端点"""
    runtime = getattr(request.app.state, "payment_runtime", None)
    pending = await runtime.store.count() if runtime is not None else 0
    return success_response(data={"status": "healthy", "pending": pending}, message="healthy")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
