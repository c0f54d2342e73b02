from __future__ import annotations
import uuid
from datetime import datetime, timezone


def now_utc() -> datetime:
    # 去掉 tzinfo：与 DB 里的 naive UTC 对齐，排序/比较不会混用 aware/naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())
