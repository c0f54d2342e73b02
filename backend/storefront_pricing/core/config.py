# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import Field, AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Storefront Pricing"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"


    # ========= 登录 / 鉴权 / CORS =========
    SECRET_KEY: str = Field("CHANGE_ME", alias="SECRET_KEY")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(480, alias="ACCESS_TOKEN_EXPIRE_MINUTES")   # 8h
    COOKIE_NAME: str = Field("access_token", alias="COOKIE_NAME")
    COOKIE_DOMAIN: Optional[str] = Field(None, alias="COOKIE_DOMAIN")
    COOKIE_SAMESITE: str = Field("Strict", alias="COOKIE_SAMESITE")
    CORS_ORIGINS: List[AnyHttpUrl] = Field(default_factory=list, alias="CORS_ORIGINS")
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"


    # ========= Database =========
    # - 容器内默认连 docker 网络里的 "db" 服务
    # - 本机工具（psql/脚本）可使用 DATABASE_URL_LOCAL（指向 localhost）
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://sp_user:sp_pass@db:5432/storefront_pricing",
        alias="DATABASE_URL"
    )
    DATABASE_URL_LOCAL: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL_LOCAL",
        description="Optional local URL for tools (e.g. psql). Typically '...@localhost:5432/storefront_pricing'"
    )


    # ========= pricing config =========
    # 写规则前做毛利校验（需要接入 catalog reader 才生效）
    PRICING_ENFORCE_MARGIN: bool = Field(default=True, alias="PRICING_ENFORCE_MARGIN")
    # 每个类目的最低毛利（EUR）：售价不能低于 cost_eur + 阈值；未配置的类目按 0
    PRICING_MARGIN_THRESHOLDS: Dict[str, Decimal] = Field(
        default_factory=lambda: {
            "TS4 FLEX MLPE": Decimal("2"),
            "TS4-X MLPE": Decimal("2"),
            "COMMUNICATIONS": Decimal("10"),
            "EI RESIDENTIAL SOLUTION": Decimal("100"),
        },
        alias="PRICING_MARGIN_THRESHOLDS",
    )
    PRICING_ASSIGN_RETRIES: int = Field(default=1, ge=0, le=5, alias="PRICING_ASSIGN_RETRIES")  # upsert 与并发删除冲突时的重试次数
    PRICING_DEFAULT_PRIORITY: int = Field(default=0, alias="PRICING_DEFAULT_PRIORITY")


settings = Settings()  # 只从环境读取（含 .env）
