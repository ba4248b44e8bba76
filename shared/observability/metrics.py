from prometheus_client import Counter, Histogram, Gauge

# Business Metrics
jastip_order_transition_total = Counter(
    "jastip_order_transition_total",
    "Order status transitions attempted",
    ["from_status", "to_status", "result"] # result: 'ok', 'invalid', 'unauthorized', 'conflict'
)

jastip_proof_upload_total = Counter(
    "jastip_proof_upload_total",
    "Payment proof uploads",
    ["status"] # Labels: 'uploaded', 'reused', 'failed'
)

jastip_proof_orphan_total = Counter(
    "jastip_proof_orphan_total",
    "Proof blobs stored whose order update did not commit"
)

jastip_proof_workflow_duration_seconds = Histogram(
    "jastip_proof_workflow_duration_seconds",
    "Attach-proof workflow duration in seconds"
)

jastip_chat_messages_total = Counter(
    "jastip_chat_messages_total",
    "Chat messages sent",
    ["status"] # Labels: 'sent', 'failed'
)

jastip_open_chat_channels = Gauge(
    "jastip_open_chat_channels",
    "Number of currently open chat channels"
)
