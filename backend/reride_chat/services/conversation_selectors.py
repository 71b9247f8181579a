"""
Conversation selectors.

WHAT: Derive the current conversation, a viewer's inbox and unread counts
WHY: The open conversation is always read from the store, never cached
HOW: Plain functions over the store and Conversation models
"""

from ..core.conversation_store import ConversationStore, conversation_store
from ..models.chat import Conversation, SenderRole, UserRole, Viewer
from ..utils.exceptions import ConversationAccessDenied


def ensure_can_view(conversation: Conversation, viewer: Viewer) -> None:
    """Participants and admins may read a conversation; nobody else."""
    if viewer.role == UserRole.ADMIN:
        return
    if not viewer.participates_in(conversation):
        raise ConversationAccessDenied(conversation.id, viewer.email)


def select_conversation(
    conversation_id: str,
    viewer: Viewer,
    store: ConversationStore = conversation_store,
) -> Conversation:
    """Fresh copy of one conversation for a viewer allowed to see it."""
    conversation = store.get_conversation(conversation_id)
    ensure_can_view(conversation, viewer)
    return conversation


def inbox_for(
    viewer: Viewer,
    flagged: bool | None = None,
    store: ConversationStore = conversation_store,
) -> list[Conversation]:
    """Conversations visible to the viewer, most recent activity first."""
    if viewer.role == UserRole.CUSTOMER:
        return store.list_conversations(customer_id=viewer.email, flagged=flagged)
    if viewer.role == UserRole.SELLER:
        return store.list_conversations(seller_id=viewer.email, flagged=flagged)
    return store.list_conversations(flagged=flagged)


def is_unread_for(conversation: Conversation, viewer: Viewer) -> bool:
    if viewer.sender_role == SenderRole.BUYER:
        return not conversation.is_read_by_customer
    if viewer.sender_role == SenderRole.SELLER:
        return not conversation.is_read_by_seller
    return False


def unread_count(conversations: list[Conversation], viewer: Viewer) -> int:
    """Number of conversations with activity the viewer has not read."""
    return sum(1 for c in conversations if is_unread_for(c, viewer))
