# admin user database repository

from sqlalchemy import select
from sqlalchemy.orm import Session
from typing import Optional
from storefront_pricing.db.model.user import AdminUser


def get_by_username(db: Session, username: str) -> Optional[AdminUser]:
    return db.scalars(select(AdminUser).where(AdminUser.username == username)).first()


def create_user(db: Session, username: str, hashed_password: str,
                full_name: str | None = None, is_superuser: bool = False) -> AdminUser:
    user = AdminUser(
        username=username,
        hashed_password=hashed_password,
        full_name=full_name,
        is_superuser=is_superuser,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
