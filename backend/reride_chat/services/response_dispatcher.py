"""
Response dispatcher.

WHAT: Entry point for every user intent that changes a conversation
WHY: Identity, recipient and status checks must hold no matter which client calls
HOW: Reload from the store, plan with the pure state machines, commit one transaction
"""

from typing import Optional

from .conversation_selectors import ensure_can_view, select_conversation
from .offer_state_machine import build_offer_draft, plan_response, validate_offer_price
from .test_drive import build_request_draft, plan_test_drive_response
from ..core.conversation_store import ConversationStore, conversation_store
from ..models.chat import (
    Conversation,
    MessageDraft,
    ResponseAction,
    SenderRole,
    TestDriveAction,
    UserRole,
    Viewer,
)
from ..utils.exceptions import (
    ActionNotAllowedError,
    ConversationAccessDenied,
    ValidationException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000
MAX_FLAG_REASON_LENGTH = 500


def conversation_id_for(customer_email: str, vehicle_id: int) -> str:
    return f"{customer_email.strip().lower()}-{vehicle_id}"


class ResponseDispatcher:
    """
    Validates intents and commits them through the conversation store.

    WHAT: start, message, offer, respond, test drive, read and flag operations
    WHY: Rendering hides illegal buttons, but only this layer enforces the rules
    HOW: Each method reloads the conversation so checks run on stored state,
         then performs exactly one store mutation
    """

    def __init__(self, store: ConversationStore = conversation_store):
        self.store = store

    def _participant_side(self, conversation: Conversation, viewer: Viewer) -> SenderRole:
        side = viewer.sender_role
        if side is None or not viewer.participates_in(conversation):
            raise ConversationAccessDenied(conversation.id, viewer.email)
        return side

    # ----- conversations and messages -----

    def start_conversation(
        self,
        viewer: Viewer,
        *,
        vehicle_id: int,
        seller_id: str,
        vehicle_name: str = "",
        vehicle_price: Optional[int] = None,
        initial_message: Optional[str] = None,
    ) -> tuple[Conversation, bool]:
        """
        Open the customer's thread about a vehicle, or return the existing one.

        Returns:
            (conversation, created flag)
        """
        if viewer.role != UserRole.CUSTOMER:
            raise ActionNotAllowedError("start a conversation", viewer.role.value, [])
        if seller_id.strip().lower() == viewer.email:
            raise ValidationException("You cannot start a conversation about your own listing.")

        conversation, created = self.store.create_conversation(
            Conversation(
                id=conversation_id_for(viewer.email, vehicle_id),
                customer_id=viewer.email,
                customer_name=viewer.name,
                seller_id=seller_id.strip().lower(),
                vehicle_id=vehicle_id,
                vehicle_name=vehicle_name,
                vehicle_price=vehicle_price,
            )
        )
        if initial_message and initial_message.strip():
            conversation = self.send_message(conversation.id, viewer, initial_message)
        return conversation, created

    def send_message(self, conversation_id: str, viewer: Viewer, text: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        side = self._participant_side(conversation, viewer)

        text = (text or "").strip()
        if not text:
            raise ValidationException("Message cannot be empty.")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationException(f"Message is longer than {MAX_MESSAGE_LENGTH} characters.")

        return self.store.append_message(conversation_id, MessageDraft(sender=side, text=text))

    # ----- offers -----

    def make_offer(self, conversation_id: str, viewer: Viewer, price) -> Conversation:
        """
        Append a fresh pending offer from the customer.

        Sellers put prices on the table only by countering.
        """
        conversation = self.store.get_conversation(conversation_id)
        side = self._participant_side(conversation, viewer)
        if side != SenderRole.BUYER:
            raise ActionNotAllowedError("make an offer", viewer.role.value, ["counter"])

        amount = validate_offer_price(price)
        updated = self.store.append_message(conversation_id, build_offer_draft(side, amount))
        logger.info(f"Offer of {amount} made in {conversation_id} by {viewer.email}")
        return updated

    def respond(
        self,
        conversation_id: str,
        message_id: int,
        viewer: Viewer,
        action: ResponseAction,
        counter_price=None,
        expected_revision: Optional[int] = None,
    ) -> Conversation:
        """
        Accept, reject or counter a pending offer.

        Nothing is written unless every check passes; a concurrent response
        landing first surfaces as StaleOfferError from the store.
        """
        conversation = self.store.get_conversation(conversation_id)
        transition = plan_response(
            conversation,
            message_id,
            viewer,
            action,
            counter_price=counter_price,
            expected_revision=expected_revision,
        )
        updated = self.store.commit_offer_transition(transition)
        logger.info(
            f"{viewer.email} {action}ed offer {message_id} in {conversation_id} "
            f"(now {transition.new_status.value})"
        )
        return updated

    # ----- test drives -----

    def request_test_drive(self, conversation_id: str, viewer: Viewer, date: str, time: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        self._participant_side(conversation, viewer)
        return self.store.append_message(conversation_id, build_request_draft(viewer, date, time))

    def respond_test_drive(
        self,
        conversation_id: str,
        message_id: int,
        viewer: Viewer,
        action: TestDriveAction,
        expected_revision: Optional[int] = None,
    ) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        transition = plan_test_drive_response(
            conversation, message_id, viewer, action, expected_revision=expected_revision
        )
        updated = self.store.commit_transition(
            transition.conversation_id,
            transition.message_id,
            transition.new_status.value,
            transition.expected_revision,
            transition.appended,
            transition.responder,
        )
        logger.info(f"Test drive {message_id} in {conversation_id} -> {transition.new_status.value}")
        return updated

    # ----- read state and moderation -----

    def mark_read(self, conversation_id: str, viewer: Viewer) -> Conversation:
        """Mark the thread read for the viewer; admins only look."""
        conversation = select_conversation(conversation_id, viewer, self.store)
        if viewer.role == UserRole.ADMIN:
            return conversation
        return self.store.mark_read(conversation_id, viewer.sender_role)

    def flag(self, conversation_id: str, viewer: Viewer, reason: str) -> Conversation:
        conversation = self.store.get_conversation(conversation_id)
        ensure_can_view(conversation, viewer)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationException("Please tell us why you are reporting this conversation.")
        if len(reason) > MAX_FLAG_REASON_LENGTH:
            raise ValidationException(f"Reason is longer than {MAX_FLAG_REASON_LENGTH} characters.")

        logger.warning(f"Conversation {conversation_id} reported by {viewer.email}: {reason}")
        return self.store.flag(conversation_id, reason)

    def resolve_flag(self, conversation_id: str, viewer: Viewer) -> Conversation:
        if viewer.role != UserRole.ADMIN:
            raise ActionNotAllowedError("resolve a report", viewer.role.value, [])
        self.store.get_conversation(conversation_id)
        return self.store.resolve_flag(conversation_id)


# Singleton instance
response_dispatcher = ResponseDispatcher()
