"""
持久化狀態紀錄模型

以名稱作為主鍵，保存一份 JSON 格式的狀態子集（例如 portfolio-storage）。
"""

from datetime import datetime

from sqlalchemy import String, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from cryptofolio.database import Base


class StateRecord(Base):
    __tablename__ = "state_records"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<StateRecord {self.name}>"
