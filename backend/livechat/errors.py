# backend/livechat/errors.py


class ChatError(Exception):
    """Base class for live-chat domain errors."""


class SessionNotFound(ChatError):
    def __init__(self, session_id: str):
        super().__init__(f"Chat session {session_id} not found")
        self.session_id = session_id


class InvalidTransition(ChatError):
    def __init__(self, session_id: str, status: str, action: str):
        super().__init__(f"Cannot {action} chat session {session_id} while it is {status}")
        self.session_id = session_id
        self.status = status
        self.action = action


class ValidationFailure(ChatError):
    pass


class BotUnavailable(ChatError):
    pass
