from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class MongoModel(BaseModel):
    """Document with an opaque string identity stored in ``_id``."""
    id: str = Field(default_factory=new_id, alias="_id")

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)
