import os
from dotenv import load_dotenv

load_dotenv()

# Fees are fixed per order, in the smallest currency unit (IDR)
JASTIP_FEE = int(os.getenv("JASTIP_FEE", "25000"))
PLATFORM_FEE = int(os.getenv("PLATFORM_FEE", "5000"))

# Blob storage for payment proofs
BLOB_BACKEND = os.getenv("BLOB_BACKEND", "local") # 'local' or 'http'
BLOB_LOCAL_ROOT = os.getenv("BLOB_LOCAL_ROOT", "./blobs")
BLOB_PUBLIC_BASE_URL = os.getenv("BLOB_PUBLIC_BASE_URL", "http://localhost:8000/blobs")
BLOB_STORE_URL = os.getenv("BLOB_STORE_URL", "http://localhost:54321")
BLOB_STORE_API_KEY = os.getenv("BLOB_STORE_API_KEY", "")
BLOB_STORE_TIMEOUT = float(os.getenv("BLOB_STORE_TIMEOUT", "30"))
PROOF_BUCKET = os.getenv("PROOF_BUCKET", "receipts")

# Chat
CHAT_SEND_RATE_LIMIT = os.getenv("CHAT_SEND_RATE_LIMIT", "30/minute")
