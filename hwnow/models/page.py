"""Dashboard page model — a named, ordered collection of widgets per user."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Page(Base):
    __tablename__ = "pages"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    page_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    page_name: Mapped[str] = mapped_column(String(255), nullable=False)
    page_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "pageId": self.page_id,
            "userId": self.user_id,
            "pageName": self.page_name,
            "pageOrder": self.page_order,
        }
