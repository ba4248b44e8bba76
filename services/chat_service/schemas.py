from datetime import datetime
from pydantic import BaseModel, ConfigDict, field_validator
from services.order_service.schemas import as_utc

class MessageCreate(BaseModel):
    content: str

class MessageOut(BaseModel):
    # Frozen: messages never change once stored
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    order_id: str
    sender_id: str
    content: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value):
        return as_utc(value)

    def sort_key(self):
        return (self.created_at, self.id)
