from .setup import setup_observability
from .metrics import (
    jastip_order_transition_total,
    jastip_proof_upload_total,
    jastip_proof_orphan_total,
    jastip_proof_workflow_duration_seconds,
    jastip_chat_messages_total,
    jastip_open_chat_channels
)
