from fastapi import APIRouter, Depends
from storefront_pricing.services.auth_service import get_current_user


# 非受保护路由
from .routes_health import router as health_router
from .auth import router as auth_router
from .storefront_pricing import router as storefront_router   # 店面只读，customer_id 由上游会话层给


# 需要登录的受保护路由
from .pricing_admin import router as pricing_admin_router


api_v1 = APIRouter()
api_v1.include_router(health_router)      # /health 不需要登录
api_v1.include_router(auth_router)        # /auth 登录相关
api_v1.include_router(storefront_router)  # /storefront 店面价格

# --- 需要登录的接口 ---
protected = APIRouter(dependencies=[Depends(get_current_user)])
protected.include_router(pricing_admin_router)

# 把受保护路由注册进主路由
api_v1.include_router(protected)
