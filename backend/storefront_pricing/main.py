
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from storefront_pricing.core.config import settings
from storefront_pricing.core.logging import configure_logging
from storefront_pricing.db.session import dispose_engine
from storefront_pricing.api.v1 import api_v1


logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s starting env=%s", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield
    dispose_engine()   # 优雅关停：释放连接池


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# 前端白名单（逗号分隔），本地可配：
# BACKEND_CORS_ORIGINS=http://localhost:3000,https://shop.local.test
origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,    # 后台登录走 Cookie
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    )


# Origin 校验（仅对改数据方法）；店面价格接口是只读 POST，放行
TRUSTED = set(origins)
READ_ONLY_POST_PREFIXES = (
    f"{settings.API_PREFIX}/storefront",
)

@app.middleware("http")
async def origin_check(request: Request, call_next):
    p = request.url.path

    if p.startswith(READ_ONLY_POST_PREFIXES):
        return await call_next(request)

    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        origin = request.headers.get("origin")
        # 没有 Origin（如 curl / 服务端调用）则放行
        if not origin:
            return await call_next(request)
        if origin not in TRUSTED:
            return JSONResponse(status_code=403, content={"detail": "Bad Origin"})

    return await call_next(request)


app.include_router(api_v1, prefix=settings.API_PREFIX)

# 根路径探活（Docker 健康检查）
@app.get("/")
def root():
    return {
        "app": settings.PROJECT_NAME,
        "env": settings.ENVIRONMENT,
        "ok": True
    }
