from sqlalchemy import String, DateTime, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime

from app.core.clock import utc_now
from app.db.base import Base


class Board(Base):
    __tablename__ = "boards"

    id: Mapped[int] = mapped_column("board_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("board_name", String(50), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)  # 有効フラグ
    display_order: Mapped[Optional[int]] = mapped_column(Integer)  # 表示順
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)
