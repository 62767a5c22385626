# app/endpoints/triage_ws.py
import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.triage_models import RawTurn
from app.services.audit import audit_hook, record_reply
from app.services.citations import ReferenceCatalogError
from app.services.humanizer import NarrativeModel, get_narrative_model
from app.services.session_store import SessionStore, StaleSessionError, get_session_store
from app.services.triage_service import handle_chat_turn

logger = logging.getLogger(__name__)

router = APIRouter()


async def _stop_watching(watch: "asyncio.Task") -> Optional[str]:
    """Cancel the receive watcher and settle it.

    A frame that arrived just before the cancel is handed back so the next turn
    still sees it; a disconnect that arrived is re-raised.
    """
    watch.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await watch
    if watch.cancelled():
        return None
    message = watch.result()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    return message.get("text")


@router.websocket("/ws/triage")
async def ws_triage(
    websocket: WebSocket,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
    narrative_model: NarrativeModel = Depends(get_narrative_model),
):
    await websocket.accept()
    pending: Optional[str] = None
    try:
        while True:
            text = pending if pending is not None else await websocket.receive_text()
            pending = None
            try:
                turn = RawTurn.model_validate_json(text)
            except ValidationError as e:
                await websocket.send_json({"error": "Invalid request format", "detail": e.errors(include_url=False, include_context=False, include_input=False)})
                continue

            # Watch the socket while the turn runs so a disconnect cancels the work.
            work = asyncio.create_task(
                handle_chat_turn(turn, store, narrative_model=narrative_model, on_decision=audit_hook(db))
            )
            watch = asyncio.create_task(websocket.receive())
            done, _ = await asyncio.wait({work, watch}, return_when=asyncio.FIRST_COMPLETED)
            if watch in done:
                message = watch.result()
                if message["type"] == "websocket.disconnect":
                    if not work.done():
                        work.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await work
                    logger.warning("⚠️ WebSocket disconnected mid-turn, pending work cancelled")
                    return
                pending = message.get("text")
            else:
                pending = await _stop_watching(watch)

            try:
                reply = await work
            except ReferenceCatalogError:
                await websocket.send_json({"error": "Reference catalog unavailable"})
                continue
            except StaleSessionError:
                await websocket.send_json({"error": "Session was updated concurrently; please resend"})
                continue

            record_reply(db, reply)
            await websocket.send_text(reply.model_dump_json(exclude_none=True))

    except WebSocketDisconnect:
        logger.warning("⚠️ WebSocket disconnected")
        return
