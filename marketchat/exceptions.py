"""
Error taxonomy for the chat core. Services raise these; REST renders them
through ``marketchat.exception_handler`` and the WebSocket consumer turns them
into ``error`` events.
"""

from rest_framework import status


class ChatError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "error"
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ChatError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Authentication required"


class Forbidden(ChatError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Access denied"


class InvalidRequest(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"
    default_message = "Invalid request"


class NotFound(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class StoreFailure(ChatError):
    code = "store_failure"
    default_message = "Failed to persist changes"


class NotificationFailure(ChatError):
    """Raised inside side-channel senders; always caught and logged by the dispatcher."""

    code = "notification_failure"
    default_message = "Notification could not be delivered"
