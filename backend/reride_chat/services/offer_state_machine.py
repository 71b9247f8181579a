"""
Offer state machine for chat negotiations.

WHAT: Legal offer transitions, recipient rules and response planning
WHY: One place decides who may accept, reject or counter which offer
HOW: Pure functions over Conversation/ChatMessage; nothing here touches the store

    pending ──accept──► accepted   (terminal)
       │ ────reject──► rejected   (terminal)
       └─────counter─► countered  (terminal for this message; a new pending
                                   offer from the responder is appended)
"""

import re
from dataclasses import dataclass

from ..core.config import settings
from ..models.chat import (
    ChatMessage,
    Conversation,
    MessageDraft,
    MessageType,
    OfferPayload,
    OfferStatus,
    ResponseAction,
    SenderRole,
    Viewer,
)
from ..utils.exceptions import (
    ActionNotAllowedError,
    ConversationAccessDenied,
    MessageNotFoundException,
    OfferAlreadyResolvedError,
    OfferAuthorizationError,
    StaleOfferError,
    ValidationException,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: frozenset({OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.COUNTERED}),
    OfferStatus.ACCEPTED: frozenset(),
    OfferStatus.REJECTED: frozenset(),
    OfferStatus.COUNTERED: frozenset(),
}

ACTION_TO_STATUS: dict[str, OfferStatus] = {
    "accept": OfferStatus.ACCEPTED,
    "reject": OfferStatus.REJECTED,
    "counter": OfferStatus.COUNTERED,
}

# ASCII digits only, at most one sign
PRICE_PATTERN = re.compile(r"[+-]?\d+", re.ASCII)


@dataclass(frozen=True)
class OfferTransition:
    """A planned, not yet persisted, response to an offer."""
    conversation_id: str
    message_id: int
    expected_revision: int
    new_status: OfferStatus
    appended: MessageDraft
    responder: SenderRole


def can_transition(current: OfferStatus, target: OfferStatus) -> bool:
    return target in OFFER_TRANSITIONS[current]


def is_terminal(status: OfferStatus) -> bool:
    return not OFFER_TRANSITIONS[status]


def validate_offer_price(raw) -> int:
    """
    Parse an offer amount entered by a user.

    Accepts ints and digit strings ("550000", " 550000 "). Rejects anything
    non-numeric, fractional or not strictly positive.

    Raises:
        ValidationException: the amount is not a positive whole number
    """
    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw.is_integer():
        value = int(raw)
    elif isinstance(raw, str) and PRICE_PATTERN.fullmatch(raw.strip()):
        value = int(raw.strip())
    else:
        value = None

    if value is None or value <= 0:
        raise ValidationException(
            "Please enter a valid price.",
            field_errors=[{"field": "price", "error": f"must be a positive whole number, got {raw!r}"}]
        )
    return value


def offers_in(conversation: Conversation) -> list[ChatMessage]:
    return [m for m in conversation.messages if m.type == MessageType.OFFER]


def latest_offer(conversation: Conversation) -> ChatMessage | None:
    """Most recent offer-typed message, or None when nobody has made an offer."""
    offers = offers_in(conversation)
    return offers[-1] if offers else None


def is_recipient(message: ChatMessage, viewer: Viewer, conversation: Conversation) -> bool:
    """
    True when the viewer is the party who did not author the message.

    The viewer must be a participant of the conversation (identity match on
    email) and write on the opposite side from the sender. Admins and system
    messages never have a recipient who may act.
    """
    own_side = viewer.sender_role
    if own_side is None or message.sender == SenderRole.SYSTEM:
        return False
    if not viewer.participates_in(conversation):
        return False
    return message.sender != own_side


def counter_allowed(viewer: Viewer) -> bool:
    return viewer.role.value in settings.get_counter_offer_roles()


def available_actions(message: ChatMessage, viewer: Viewer, conversation: Conversation) -> list[str]:
    """Actions the viewer may take on this offer message right now."""
    offer = message.offer
    if offer is None or offer.status != OfferStatus.PENDING:
        return []
    if not is_recipient(message, viewer, conversation):
        return []
    actions = ["accept", "reject"]
    if counter_allowed(viewer):
        actions.append("counter")
    return actions


def build_offer_draft(sender: SenderRole, price: int, countering: int | None = None) -> MessageDraft:
    """Draft a pending offer message; ``countering`` is the superseded price."""
    text = f"Counter-offer: {price}" if countering is not None else f"Offer: {price}"
    return MessageDraft(
        sender=sender,
        text=text,
        type=MessageType.OFFER,
        payload=OfferPayload(offer_price=price, status=OfferStatus.PENDING, counter_price=countering),
    )


def plan_response(
    conversation: Conversation,
    message_id: int,
    viewer: Viewer,
    action: ResponseAction,
    counter_price=None,
    expected_revision: int | None = None,
) -> OfferTransition:
    """
    Decide what responding to an offer does, without doing it.

    Checks run in a fixed order so the caller gets the most specific error:
    message exists and is an offer, viewer is a participant and the recipient,
    offer still pending, revision unchanged, action allowed for the role,
    counter price valid.

    Raises:
        MessageNotFoundException, ConversationAccessDenied,
        OfferAuthorizationError, OfferAlreadyResolvedError, StaleOfferError,
        ActionNotAllowedError, ValidationException
    """
    message = conversation.find_message(message_id)
    if message is None or message.offer is None:
        raise MessageNotFoundException(conversation.id, message_id)

    if viewer.sender_role is not None and not viewer.participates_in(conversation):
        raise ConversationAccessDenied(conversation.id, viewer.email)

    if not is_recipient(message, viewer, conversation):
        logger.warning(
            f"Rejected {action} on offer {message_id} in {conversation.id}: "
            f"{viewer.email} ({viewer.role.value}) is not the recipient"
        )
        raise OfferAuthorizationError(message_id, viewer.email)

    offer = message.offer
    if offer.status != OfferStatus.PENDING:
        raise OfferAlreadyResolvedError(message_id, offer.status.value)

    if expected_revision is not None and expected_revision != message.revision:
        raise StaleOfferError(message_id, expected_revision, message.revision)

    if action not in ACTION_TO_STATUS:
        raise ValidationException(f"Unknown action: {action}")

    allowed = available_actions(message, viewer, conversation)
    if action not in allowed:
        raise ActionNotAllowedError(action, viewer.role.value, allowed)

    responder = viewer.sender_role
    if action == "counter":
        price = validate_offer_price(counter_price)
        if price == offer.offer_price:
            raise ValidationException(
                "A counter-offer must differ from the offer it answers.",
                field_errors=[{"field": "counter_price", "error": f"equals the current offer {price}"}]
            )
        appended = build_offer_draft(responder, price, countering=offer.offer_price)
    else:
        status = ACTION_TO_STATUS[action]
        appended = MessageDraft(sender=SenderRole.SYSTEM, text=f"Offer {status.value}.")

    return OfferTransition(
        conversation_id=conversation.id,
        message_id=message_id,
        expected_revision=message.revision,
        new_status=ACTION_TO_STATUS[action],
        appended=appended,
        responder=responder,
    )
