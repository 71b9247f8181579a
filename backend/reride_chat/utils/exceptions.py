"""
Business exceptions for the chat and offer negotiation API.

WHAT: Domain-specific exceptions that map to HTTP status codes
WHY: Consistent error handling across endpoints, dispatcher and store
HOW: Exception classes carrying an error code, message and details
"""

from typing import Optional, List, Dict, Any


class BusinessException(Exception):
    """Base class for business logic exceptions."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ValidationException(BusinessException):
    """Raised for validation errors (bad price, empty text, bad payload)."""

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field_errors": field_errors} if field_errors else None
        )


class MissingIdentityException(BusinessException):
    """Raised when a request carries no usable identity."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Identity required: {reason}",
            code="IDENTITY_REQUIRED",
            details={"reason": reason}
        )


class ConversationNotFoundException(BusinessException):
    """Raised when a conversation is not found."""

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation not found: {conversation_id}",
            code="CONVERSATION_NOT_FOUND",
            details={"conversation_id": conversation_id}
        )


class MessageNotFoundException(BusinessException):
    """Raised when a message id does not exist in a conversation."""

    def __init__(self, conversation_id: str, message_id: int):
        super().__init__(
            message=f"Message {message_id} not found in conversation {conversation_id}",
            code="MESSAGE_NOT_FOUND",
            details={"conversation_id": conversation_id, "message_id": message_id}
        )


class ConversationAccessDenied(BusinessException):
    """Raised when the viewer is not a participant of the conversation."""

    def __init__(self, conversation_id: str, email: str):
        super().__init__(
            message=f"{email} is not a participant of conversation {conversation_id}",
            code="CONVERSATION_FORBIDDEN",
            details={"conversation_id": conversation_id, "email": email}
        )


class ActionNotAllowedError(BusinessException):
    """Raised when a role may not perform an action (e.g. a buyer countering)."""

    def __init__(self, action: str, role: str, allowed: Optional[List[str]] = None):
        super().__init__(
            message=f"Role '{role}' may not {action}",
            code="ACTION_NOT_ALLOWED",
            details={"action": action, "role": role, "allowed_actions": allowed or []}
        )


class OfferAuthorizationError(BusinessException):
    """Raised when someone other than the recipient acts on an offer."""

    def __init__(self, message_id: int, email: str):
        super().__init__(
            message=f"Only the recipient may respond to offer {message_id}",
            code="NOT_OFFER_RECIPIENT",
            details={"message_id": message_id, "email": email}
        )


class OfferAlreadyResolvedError(BusinessException):
    """Raised when acting on a request whose status is no longer pending."""

    def __init__(self, message_id: int, current_status: str):
        super().__init__(
            message=f"This offer was already resolved (status: {current_status})",
            code="OFFER_ALREADY_RESOLVED",
            details={"message_id": message_id, "current_status": current_status}
        )


class StaleOfferError(BusinessException):
    """Raised when the offer changed between the client's read and its write."""

    def __init__(self, message_id: int, expected_revision: int, current_revision: Optional[int] = None):
        super().__init__(
            message=f"Offer {message_id} was modified by someone else; reload and try again",
            code="STALE_OFFER",
            details={
                "message_id": message_id,
                "expected_revision": expected_revision,
                "current_revision": current_revision
            }
        )


class ConversationStoreError(BusinessException):
    """Raised when the conversation store cannot complete a read or write."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"Failed to {operation}, try again",
            code="STORE_UNAVAILABLE",
            details={"operation": operation, "reason": reason}
        )
