# app/endpoints/__init__.py

# Import routers from each endpoint file
from .triage import router as triage_router
from .rx import router as rx_router
from .report import router as report_router
from .triage_ws import router as triage_ws_router

__all__ = ["triage_router", "rx_router", "report_router", "triage_ws_router"]
