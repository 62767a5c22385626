# app/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.database import Base, engine
from app.endpoints import report_router, rx_router, triage_router, triage_ws_router
from app.models import triage  # noqa: F401  registers the audit table
from app.services.citations import ReferenceCatalogError
from app.services.session_store import StaleSessionError

logger = logging.getLogger(__name__)

app = FastAPI(title="Clinical Guidance API", version="1.0.0")


@app.on_event("startup")
async def startup_event():
    # Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Audit tables ready")


@app.exception_handler(ReferenceCatalogError)
async def reference_catalog_unavailable(request: Request, exc: ReferenceCatalogError):
    logger.error(f"❌ {exc}")
    return JSONResponse(status_code=503, content={"detail": "Reference catalog unavailable"})


@app.exception_handler(StaleSessionError)
async def stale_session(request: Request, exc: StaleSessionError):
    logger.warning(f"⚠️ {exc}")
    return JSONResponse(status_code=409, content={"detail": "Session was updated concurrently; please resend"})


# Include HTTP routers
app.include_router(triage_router)
app.include_router(rx_router)
app.include_router(report_router)

# Mount WebSocket endpoint
app.include_router(triage_ws_router)


@app.get("/")
def root():
    return {"message": "API is running"}
