from fastapi import Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
from storefront_pricing.db.session import get_db
from storefront_pricing.core.security import verify_password, create_access_token, decode_token
from storefront_pricing.core.config import settings
from storefront_pricing.db.model.user import AdminUser
from storefront_pricing.repository.user_repo import get_by_username


COOKIE_NAME = settings.COOKIE_NAME

# Cookie 策略：线上 Secure=True；本地 http 开发降级 Secure=False
COOKIE_SECURE_DEFAULT = settings.ENVIRONMENT not in ("local", "dev", "test")
COOKIE_DOMAIN = settings.COOKIE_DOMAIN or None
COOKIE_SAMESITE = settings.COOKIE_SAMESITE


def set_auth_cookie(resp: Response, token: str, max_age: int):
    resp.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=COOKIE_SECURE_DEFAULT,
        samesite=COOKIE_SAMESITE,
        domain=COOKIE_DOMAIN,
        path="/",
    )


def clear_cookie(response: Response):
    response.delete_cookie(key=COOKIE_NAME, domain=COOKIE_DOMAIN, path="/")


'''
后台登录：校验账号 -> 签发 JWT -> 写 HttpOnly Cookie
    - Cookie max_age 与 JWT 过期时间保持一致
'''
def login_user(response: Response, db: Session, username: str, password: str) -> AdminUser:
    user = authenticate_user(db, username, password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    expires_minutes = int(settings.ACCESS_TOKEN_EXPIRE_MINUTES or 480)
    token = create_access_token(
        {"user_id": user.id, "username": user.username},
        expires_minutes=expires_minutes,
    )
    set_auth_cookie(response, token, expires_minutes * 60)
    return user


def authenticate_user(db: Session, username: str, password: str) -> AdminUser | None:
    user = get_by_username(db, username)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> AdminUser:
    """从 Cookie 取出 JWT 并校验；所有定价后台接口都挂这个依赖。"""
    raw = request.cookies.get(COOKIE_NAME)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(raw)
    if not payload or "user_id" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.get(AdminUser, payload["user_id"])
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled")
    return user
