"""WebSocket endpoint of the Real-time Relay.

Customers connect anonymously; admin consoles pass their operator key as the
``api_key`` query parameter. Each frame is handled with its own database
session, and a failing frame is answered with an ``error`` event instead of
closing the connection.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from .. import models, schemas
from ..database import SessionLocal
from ..errors import ChatError
from ..services import admin_settings, presence, registry
from ..services.bot import BotResponder
from ..services.handoff import HandoffController
from ..services.relay import ROLE_ADMIN, Relay, Subscriber
from .auth import admin_for_key
from .deps import get_bot_responder, get_relay

logger = logging.getLogger(__name__)

router = APIRouter()


class NotAuthorized(ChatError):
    pass


def _require_admin(sub: Subscriber) -> str:
    if sub.admin_id is None:
        raise NotAuthorized("This action requires an operator key")
    return sub.admin_id


async def _handle_frame(frame, sub: Subscriber, controller: HandoffController) -> None:
    relay = controller.relay

    if isinstance(frame, schemas.JoinSession):
        if frame.role == ROLE_ADMIN:
            _require_admin(sub)
        registry.get_session(controller.db, frame.session_id)
        relay.join(sub, frame.session_id, frame.role)
        await sub.send({"type": "session_joined", "session_id": frame.session_id, "role": frame.role})

    elif isinstance(frame, schemas.SendMessage):
        if sub.role == ROLE_ADMIN:
            await controller.admin_message(
                frame.session_id, _require_admin(sub), frame.message, frame.sender_name, origin=sub
            )
        else:
            await controller.customer_message(frame.session_id, frame.message, frame.sender_name, origin=sub)

    elif isinstance(frame, schemas.TransferToHuman):
        await controller.request_transfer(frame.session_id)

    elif isinstance(frame, schemas.AdminPresence):
        admin_id = _require_admin(sub)
        online = frame.type == "admin_online"
        admin_settings.set_online(controller.db, admin_id, online)
        if online:
            relay.register_admin(sub)
            presence.heartbeat(admin_id)
        # the sender sees its own presence change, so broadcast before unregistering
        await relay.publish_to_admins({"type": frame.type, "admin_id": admin_id})
        if not online:
            relay.unregister_admin(sub)

    elif isinstance(frame, schemas.AgentTyping):
        _require_admin(sub)
        if frame.type == "agent_typing":
            presence.set_typing(frame.session_id, models.SENDER_ADMIN)
        else:
            presence.clear_typing(frame.session_id, models.SENDER_ADMIN)
        await relay.publish(frame.session_id, {"type": frame.type, "session_id": frame.session_id}, origin=sub)


async def _mark_offline(relay: Relay, admin_id: str) -> None:
    """Take an admin offline once their last console connection is gone."""
    with SessionLocal() as db:
        if not admin_settings.get_settings(db, admin_id).is_online:
            return
        admin_settings.set_online(db, admin_id, False)
    await relay.publish_to_admins({"type": "admin_offline", "admin_id": admin_id})


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    api_key: Optional[str] = None,
    relay: Relay = Depends(get_relay),
    bot: BotResponder = Depends(get_bot_responder),
):
    await websocket.accept()
    admin_id = admin_for_key(api_key)
    sub = relay.connect(websocket, admin_id=admin_id)
    if admin_id is not None:
        relay.register_admin(sub)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = schemas.client_frame_adapter.validate_json(raw)
            except ValidationError as exc:
                await sub.send({"type": "error", "detail": f"Invalid frame: {exc.errors()[0]['msg']}"})
                continue
            with SessionLocal() as db:
                try:
                    await _handle_frame(frame, sub, HandoffController(db, relay, bot))
                except ChatError as exc:
                    await sub.send({"type": "error", "detail": str(exc)})
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(websocket)
        if admin_id is not None:
            logger.info("Admin %s disconnected from relay", admin_id)
            if not relay.is_connected(admin_id):
                await _mark_offline(relay, admin_id)
