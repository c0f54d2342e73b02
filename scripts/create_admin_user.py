
import os
import sys

from sqlalchemy.orm import Session
from storefront_pricing.db.session import SessionLocal
from storefront_pricing.repository.user_repo import get_by_username, create_user
from storefront_pricing.core.security import get_password_hash


# 在容器里运行一次：
#   PRICING_ADMIN_USERNAME=... PRICING_ADMIN_PASSWORD=... python scripts/create_admin_user.py
# （backend/ 需在 PYTHONPATH 上，或已 pip install -e .）

def main() -> int:
    username = os.getenv("PRICING_ADMIN_USERNAME", "admin")
    password = os.getenv("PRICING_ADMIN_PASSWORD")
    if not password:
        print("PRICING_ADMIN_PASSWORD is required")
        return 1

    db: Session = SessionLocal()
    try:
        if get_by_username(db, username):
            print(f"User {username} exists")
            return 0
        create_user(db, username, get_password_hash(password), full_name="Pricing Admin", is_superuser=True)
        print(f"Admin {username} created")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
