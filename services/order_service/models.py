import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime
from shared.config.database import Base

def new_id() -> str:
    return str(uuid.uuid4())

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    trip_id = Column(String, nullable=False, index=True)
    buyer_id = Column(String, nullable=False, index=True)
    traveler_id = Column(String, nullable=False, index=True)
    item_name = Column(String, nullable=False)
    item_price = Column(Integer, nullable=False)
    jastip_fee = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False) # item_price + jastip_fee + platform_fee, set at insert
    status = Column(String(32), nullable=False, default="pending_payment")
    payment_proof_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
