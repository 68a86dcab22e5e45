import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..errors import ChatError
from ..services import message_log, presence, registry
from ..services.handoff import HandoffController
from .deps import get_controller, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/session", response_model=schemas.StartSessionOut, status_code=status.HTTP_201_CREATED)
async def start_chat(
    customer: schemas.CustomerInfo,
    controller: HandoffController = Depends(get_controller),
):
    try:
        chat, messages = await controller.start_session(customer)
    except ChatError as exc:
        raise http_error(exc)
    return {"session": chat, "messages": messages}


@router.get("/session/{session_id}", response_model=schemas.ChatSessionOut)
def get_chat(session_id: str, db: Session = Depends(get_db)):
    try:
        return registry.get_session(db, session_id)
    except ChatError as exc:
        raise http_error(exc)


@router.get("/session/{session_id}/messages", response_model=List[schemas.MessageOut])
def get_messages(session_id: str, db: Session = Depends(get_db)):
    try:
        return message_log.list_messages(db, session_id)
    except ChatError as exc:
        raise http_error(exc)


@router.post("/session/{session_id}/messages", response_model=schemas.PostMessageOut)
async def send_message(
    session_id: str,
    body: schemas.MessageCreate,
    controller: HandoffController = Depends(get_controller),
):
    try:
        message, bot_message = await controller.customer_message(session_id, body.message, body.sender_name)
    except ChatError as exc:
        raise http_error(exc)
    return {"customer_message": message, "bot_message": bot_message}


@router.post("/session/{session_id}/transfer", response_model=schemas.ChatSessionOut)
async def request_transfer(
    session_id: str,
    controller: HandoffController = Depends(get_controller),
):
    try:
        return await controller.request_transfer(session_id)
    except ChatError as exc:
        raise http_error(exc)


# === TYPING ===
@router.get("/session/{session_id}/typing")
def get_typing(session_id: str, role: str = models.SENDER_ADMIN):
    if role not in (models.SENDER_ADMIN, models.SENDER_CUSTOMER):
        raise HTTPException(status_code=400, detail="role must be admin or customer")
    return {"is_typing": presence.is_typing(session_id, role)}
