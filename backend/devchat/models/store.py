"""Tables backing the SQL key-value store."""

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class KeyValueRecord(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str  # JSON document
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CounterRecord(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: int = Field(default=0)
