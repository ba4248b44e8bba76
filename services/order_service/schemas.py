from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, field_validator
from .state_machine import OrderStatus, Role

def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class OrderCreate(BaseModel):
    trip_id: str
    traveler_id: str
    # Optional here so a missing value surfaces as our own validation_error
    item_name: Optional[str] = None
    item_price: Optional[int] = None

class TransitionRequest(BaseModel):
    status: OrderStatus

class TimelineStep(BaseModel):
    status: str
    done: bool
    current: bool

class OrderResponse(BaseModel):
    id: str
    trip_id: str
    buyer_id: str
    traveler_id: str
    item_name: str
    item_price: int
    jastip_fee: int
    platform_fee: int
    total_amount: int
    status: OrderStatus
    payment_proof_url: Optional[str]
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value):
        return as_utc(value)

    class Config:
        from_attributes = True

class OrderDetailResponse(OrderResponse):
    viewer_role: Role
    allowed_transitions: List[OrderStatus] = []
    timeline: List[TimelineStep] = []
