"""SQL row model for the SQLite archive backend."""

from datetime import date

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class ArchivedEventRow(SQLModel, table=True):
    """One archived event, stored as a JSON record with denormalized columns."""

    __tablename__ = "archived_event"

    id: str = Field(primary_key=True, max_length=64)
    position: int = Field(index=True)  # Archive order

    # === Key queryable fields (denormalized) ===
    event_date: date | None = Field(default=None, index=True)
    category: str | None = Field(default=None, max_length=30, index=True)
    origin_url: str | None = Field(default=None, max_length=512, index=True)
    title: str | None = Field(default=None, max_length=512)

    # === Full record ===
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
