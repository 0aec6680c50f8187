from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Integer, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from match_chat.infrastructure.db.base import Base


class MessageAllowanceModel(Base):
    __tablename__ = "message_allowances"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    cap: Mapped[int] = mapped_column(Integer, nullable=False)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_unlimited: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )
    period_start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    reset_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("used >= 0", name="ck_message_allowance_used_non_negative"),
    )
