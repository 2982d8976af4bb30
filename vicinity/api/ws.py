"""WebSocket endpoint with JWT auth."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from vicinity.core.errors import EngineError
from vicinity.core.policies import CLIENT_TRIGGERS, EVENT_SOS_STATUS
from vicinity.core.security import user_id_from_token
from vicinity.core.ws_manager import WebSocketSession, encode_event
from vicinity.services.engine import Engine
from vicinity.services.triggers import DistressTrigger

logger = logging.getLogger(__name__)

router = APIRouter()


def _authenticate_ws(engine: Engine, token: str) -> int | None:
    """Validate JWT and return user_id, or None."""
    user_id = user_id_from_token(token)
    if user_id is None:
        return None
    profile = engine.directory.get(user_id)
    if not profile or not profile.is_active:
        return None
    return user_id


def _client_activation(engine: Engine, user_id: int, data: dict) -> dict:
    """Handle a client-sent sos_activate. Returns the reply payload."""
    triggered_by = data.get("triggeredBy", "manual")
    if triggered_by not in CLIENT_TRIGGERS:
        return {"ok": False, "error": "InvalidTrigger", "message": f"Unknown trigger '{triggered_by}'"}
    loc = data.get("location") or {}
    try:
        result = engine.distress.emit(
            DistressTrigger(
                user_id=user_id,
                triggered_by=triggered_by,
                reason=data.get("reason"),
                latitude=loc.get("latitude"),
                longitude=loc.get("longitude"),
                source="ws",
            )
        )
    except EngineError as e:
        return {"ok": False, **e.to_detail()}
    except ValueError as e:
        return {"ok": False, "error": "InvalidRequest", "message": str(e)}
    inc = result.incident
    return {
        "ok": True,
        "incidentId": inc.incident_id,
        "contactsNotified": inc.contacts_notified,
        "state": inc.state,
        "created": result.created,
    }


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint. Client connects with ?token=<jwt>.
    Server pushes events: proximity_alert_received, sos_alert, sos_cancelled,
    sos_resolved, sos_status, nearby_message_received, location_updated.
    An sos_status snapshot is sent right after connecting.
    """
    engine: Engine | None = getattr(websocket.app.state, "engine", None)
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Missing token")
        return
    if engine is None:
        await websocket.close(code=1013, reason="Engine not started")
        return

    user_id = await run_in_threadpool(_authenticate_ws, engine, token)
    if user_id is None:
        await websocket.close(code=4003, reason="Invalid or expired token")
        return

    await websocket.accept()
    session = WebSocketSession(websocket)
    writer = asyncio.create_task(session.writer())
    engine.connections.register(user_id, session)
    try:
        # reconnect reconciliation: the server's view of SOS state wins
        snapshot = await run_in_threadpool(engine.sos.status, user_id)
        session.push(encode_event(EVENT_SOS_STATUS, snapshot))
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                session.push(encode_event("pong", None))
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue
            if message.get("event") == "sos_activate":
                reply = await run_in_threadpool(
                    _client_activation, engine, user_id, message.get("data") or {}
                )
                session.push(encode_event("sos_activate_result", reply))
    except WebSocketDisconnect:
        pass
    finally:
        engine.connections.unregister(user_id, session)
        session.close()
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
