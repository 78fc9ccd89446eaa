"""Key-value table: the only physical table; each value is a whole JSON blob."""

from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from lexrag.models.base import utcnow


class KeyValueEntry(SQLModel, table=True):
    __tablename__ = "kv_store"

    key: str = Field(primary_key=True, max_length=100)
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
