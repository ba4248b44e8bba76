import base64
import binascii
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import ValidationError
from shared.security import get_current_user
from shared.storage import build_blob_store

from services.order_service.schemas import OrderDetailResponse
from services.order_service.service import OrderService
from .schemas import ProofCommit, ProofUpload
from .workflow import PaymentProofWorkflow

router = APIRouter(prefix="/orders/{order_id}/payment-proof", tags=["payment-proof"])

proof_workflow = PaymentProofWorkflow(build_blob_store())

def get_proof_workflow() -> PaymentProofWorkflow:
    return proof_workflow

def decode_image(image_base64: str) -> bytes:
    if image_base64.startswith("data:") and "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("The image is not valid base64.") from e

@router.post("", response_model=OrderDetailResponse)
async def attach_proof(
    order_id: str,
    payload: ProofUpload,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
    workflow: PaymentProofWorkflow = Depends(get_proof_workflow),
):
    order = await workflow.attach_proof(db, order_id, user_id, decode_image(payload.image_base64), payload.file_ext)
    return OrderService.detail(order, user_id)

# Retry path after an upload_orphan response: reuses the stored proof
@router.post("/commit", response_model=OrderDetailResponse)
async def commit_proof(
    order_id: str,
    payload: ProofCommit,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
    workflow: PaymentProofWorkflow = Depends(get_proof_workflow),
):
    order = await workflow.commit_proof(db, order_id, user_id, payload.proof_url)
    return OrderService.detail(order, user_id)
