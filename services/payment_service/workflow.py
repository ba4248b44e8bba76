"""
Payment proof workflow: store the buyer's transfer receipt, then move the
order into ``paid_escrow`` with the receipt URL in the same conditional update.

The two steps are physically separate. When the upload lands but the order
update does not, the uploaded URL is parked so that a retry commits it instead
of uploading again, and the caller receives ``UploadOrphan`` with that URL.
"""
import hashlib
import time
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import Order
from services.order_service.service import OrderService, state_machine as order_state_machine
from services.order_service.state_machine import OrderStateMachine, OrderStatus, check_transition
from shared.config import settings
from shared.errors import ProofUploadFailed, StoreError, UploadOrphan, ValidationError
from shared.observability import (
    jastip_proof_orphan_total,
    jastip_proof_upload_total,
    jastip_proof_workflow_duration_seconds,
)
from shared.storage import BlobStore
from .saga import SagaOrchestrator

logger = structlog.get_logger(__name__)

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "heic": "image/heic",
}


@dataclass
class PendingProof:
    key: str
    url: str


def proof_key(order_id: str, timestamp_ms: int, ext: str) -> str:
    return f"{order_id}_{timestamp_ms}.{ext}"


def normalize_extension(file_ext: str | None) -> str:
    ext = (file_ext or "jpg").strip().lower().lstrip(".")
    if ext not in CONTENT_TYPES:
        raise ValidationError(f"Unsupported image type '{ext}'. Use one of: {', '.join(sorted(CONTENT_TYPES))}")
    return ext


class PaymentProofWorkflow:
    def __init__(self, blob_store: BlobStore, state_machine: OrderStateMachine = order_state_machine, bucket: str = settings.PROOF_BUCKET, clock=time.time):
        self.blob_store = blob_store
        self.state_machine = state_machine
        self.bucket = bucket
        self.clock = clock
        # (order_id, sha256 of image) -> upload that has not been committed yet
        self._pending: dict[tuple[str, str], PendingProof] = {}
        self.saga = (
            SagaOrchestrator()
            .add_step("upload_proof", self._upload, self._park_orphan)
            .add_step("commit_proof", self._commit)
        )

    def pending_for(self, order_id: str) -> list[PendingProof]:
        return [proof for (oid, _), proof in self._pending.items() if oid == order_id]

    async def attach_proof(self, db: AsyncSession, order_id: str, actor_id: str, image_bytes: bytes, file_ext: str = "jpg") -> Order:
        if not image_bytes:
            raise ValidationError("Choose an image of your transfer receipt first.")
        ext = normalize_extension(file_ext)

        order = await OrderService.get_order_for_viewer(db, order_id, actor_id)
        # Preconditions are checked before anything is uploaded
        check_transition(order, OrderStatus.PAID_ESCROW, actor_id)

        ctx = {
            "db": db,
            "order": order,
            "order_id": order_id,
            "actor_id": actor_id,
            "data": image_bytes,
            "ext": ext,
            "pending_key": (order_id, hashlib.sha256(image_bytes).hexdigest()),
        }
        started = time.perf_counter()
        try:
            await self.saga.execute(ctx)
        except StoreError as e:
            if ctx.get("failed_step") == "upload_proof":
                jastip_proof_upload_total.labels(status="failed").inc()
                raise ProofUploadFailed(f"Uploading the payment proof failed, please try again. ({e.detail})") from e
            raise UploadOrphan(f"Proof uploaded but the order was not updated: {e.detail}", ctx["proof_url"]) from e
        except Exception as e:
            if ctx.get("failed_step") == "commit_proof":
                raise UploadOrphan(f"Proof uploaded but the order was not updated: {e}", ctx["proof_url"]) from e
            raise
        finally:
            jastip_proof_workflow_duration_seconds.observe(time.perf_counter() - started)

        return ctx["order"]

    async def commit_proof(self, db: AsyncSession, order_id: str, actor_id: str, proof_url: str) -> Order:
        """
        Retry the order update with a proof that is already stored.

        The URL must name this order's key in the proof bucket, and the blob
        must actually be there: either parked by an earlier attempt in this
        process or confirmed by the blob store.
        """
        key = proof_url.rsplit("/", 1)[-1]
        if not key.startswith(f"{order_id}_") or proof_url != self.blob_store.public_url(self.bucket, key):
            raise ValidationError("That proof does not belong to this order.")

        order = await OrderService.get_order_for_viewer(db, order_id, actor_id)
        check_transition(order, OrderStatus.PAID_ESCROW, actor_id)
        parked = any(proof.url == proof_url for proof in self.pending_for(order_id))
        if not parked and not await self.blob_store.exists(self.bucket, key):
            raise ValidationError("No uploaded proof was found at that URL. Upload the receipt again.")

        order = await self.state_machine.transition(db, order, OrderStatus.PAID_ESCROW, actor_id, {"payment_proof_url": proof_url})
        self._forget(order_id)
        logger.info("proof_committed", order_id=order_id, actor_id=actor_id, proof_url=proof_url, retried=True)
        return order

    # --- SAGA STEPS ---

    async def _upload(self, ctx: dict):
        pending = self._pending.get(ctx["pending_key"])
        if pending is not None:
            ctx["proof_key"], ctx["proof_url"] = pending.key, pending.url
            jastip_proof_upload_total.labels(status="reused").inc()
            logger.info("proof_upload_reused", order_id=ctx["order_id"], key=pending.key)
            return

        key = proof_key(ctx["order_id"], int(self.clock() * 1000), ctx["ext"])
        await self.blob_store.put(self.bucket, key, ctx["data"], CONTENT_TYPES[ctx["ext"]])
        ctx["proof_key"], ctx["proof_url"] = key, self.blob_store.public_url(self.bucket, key)
        jastip_proof_upload_total.labels(status="uploaded").inc()

    async def _commit(self, ctx: dict):
        ctx["order"] = await self.state_machine.transition(
            ctx["db"], ctx["order"], OrderStatus.PAID_ESCROW, ctx["actor_id"], {"payment_proof_url": ctx["proof_url"]}
        )
        # Once paid, any other parked upload for this order is stale
        self._forget(ctx["order_id"])
        logger.info("proof_committed", order_id=ctx["order_id"], actor_id=ctx["actor_id"], proof_url=ctx["proof_url"], retried=False)

    async def _park_orphan(self, ctx: dict):
        # The blob stays; remember it so the next attempt commits instead of re-uploading
        self._pending[ctx["pending_key"]] = PendingProof(ctx["proof_key"], ctx["proof_url"])
        jastip_proof_orphan_total.inc()
        logger.warning("proof_upload_orphaned", order_id=ctx["order_id"], key=ctx["proof_key"], proof_url=ctx["proof_url"])

    def _forget(self, order_id: str):
        for pending_key in [k for k in self._pending if k[0] == order_id]:
            del self._pending[pending_key]
