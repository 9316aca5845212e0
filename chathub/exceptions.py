class ChatError(Exception):
    """Базовая ошибка ядра; code уходит клиенту в событии error."""

    code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}

class InvalidArgument(ChatError):
    code = "invalid_argument"
    status_code = 400

class NotFound(ChatError):
    code = "not_found"
    status_code = 404

class Conflict(ChatError):
    code = "conflict"
    status_code = 409

class InvalidState(ChatError):
    code = "invalid_state"
    status_code = 409

class StoreError(ChatError):
    code = "store_error"
    status_code = 503
