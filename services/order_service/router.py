from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from shared.config.database import get_db
from shared.security import get_current_user
from .schemas import OrderCreate, OrderDetailResponse, OrderResponse, TransitionRequest
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}

@router.post("/", response_model=OrderDetailResponse, status_code=201)
async def create_order(
    order: OrderCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    created = await OrderService.create_order(db, user_id, order)
    return OrderService.detail(created, user_id)

@router.get("/", response_model=List[OrderResponse])
async def list_orders(db: AsyncSession = Depends(get_db), user_id: str = Depends(get_current_user)):
    return await OrderService.list_orders(db, user_id)

@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db), user_id: str = Depends(get_current_user)):
    order = await OrderService.get_order_for_viewer(db, order_id, user_id)
    return OrderService.detail(order, user_id)

@router.post("/{order_id}/transitions", response_model=OrderDetailResponse)
async def transition_order(
    order_id: str,
    payload: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    order = await OrderService.transition(db, order_id, payload.status, user_id)
    return OrderService.detail(order, user_id)
