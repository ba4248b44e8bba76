from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from shared.config import settings
from shared.config.database import engine, Base
from shared.errors import CoreError
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.order_service import models as order_models
from services.chat_service import models as chat_models

from services.order_service.router import router as order_router, public_router
from services.payment_service.router import router as payment_router
from services.chat_service.router import router as chat_router

app = FastAPI(title="Jastip Order Core", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "jastip_order_core")

# --- SECURITY SETUP ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

async def core_error_handler(request: Request, exc: CoreError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

app.add_exception_handler(CoreError, core_error_handler)

app.include_router(public_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(chat_router)

# Local proof storage is served back under the public URLs LocalBlobStore hands out
if settings.BLOB_BACKEND == "local":
    app.mount("/blobs", StaticFiles(directory=settings.BLOB_LOCAL_ROOT, check_dir=False), name="blobs")

@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
