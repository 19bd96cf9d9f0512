class AppError(Exception):
    """Base application error"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionNotFoundError(AppError):
    """Conversation id not found in the session store"""

    status_code = 404

    def __init__(self, conversation_id: str):
        super().__init__(f"Session not found: {conversation_id}")
        self.conversation_id = conversation_id


class InvalidInputError(AppError):
    """Missing required field or malformed message"""

    status_code = 400


class UpstreamError(AppError):
    """Model provider failure or missing provider credentials"""


class PersistenceError(AppError):
    """Reading or writing the sessions file failed"""
