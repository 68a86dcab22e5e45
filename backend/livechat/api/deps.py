import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import ChatError, InvalidTransition, SessionNotFound, ValidationFailure
from ..services.bot import BotResponder
from ..services.handoff import HandoffController
from ..services.relay import Relay

logger = logging.getLogger(__name__)


def get_relay(conn: HTTPConnection) -> Relay:
    return conn.app.state.relay


@lru_cache()
def get_bot_responder() -> BotResponder:
    logger.info("Initializing BotResponder...")
    return BotResponder()


def get_controller(
    db: Session = Depends(get_db),
    relay: Relay = Depends(get_relay),
    bot: BotResponder = Depends(get_bot_responder),
) -> HandoffController:
    return HandoffController(db, relay, bot)


def http_error(exc: ChatError) -> HTTPException:
    if isinstance(exc, SessionNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValidationFailure):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error("Unhandled chat error: %s", exc, exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Chat service error")
