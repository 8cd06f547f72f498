"""Database tables / schema"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBBoard(Base):
    __tablename__ = "boards"
    id: Mapped[UUID] = mapped_column(primary_key=True)
    title: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class DBList(Base):
    __tablename__ = "lists"
    __table_args__ = (
        UniqueConstraint("board_id", "position", name="uq_lists_board_position"),
    )
    parent_key: ClassVar[str] = "board_id"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    board_id: Mapped[UUID] = mapped_column(ForeignKey("boards.id"), index=True)
    title: Mapped[str]
    position: Mapped[float]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)


class DBCard(Base):
    __tablename__ = "cards"
    __table_args__ = (
        UniqueConstraint("list_id", "position", name="uq_cards_list_position"),
    )
    parent_key: ClassVar[str] = "list_id"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    list_id: Mapped[UUID] = mapped_column(ForeignKey("lists.id"), index=True)
    title: Mapped[str]
    position: Mapped[float]
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
