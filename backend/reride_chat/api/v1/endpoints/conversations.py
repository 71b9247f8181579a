"""
Conversation endpoints.

WHAT: Start, list, read, message, mark-read and flag conversations
WHY: The chat inbox for customers, sellers and moderating admins
HOW: FastAPI router delegating to the dispatcher and selectors
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ...deps import get_viewer
from ....models.api_schemas import (
    ConversationResponse,
    FlagRequest,
    InboxResponse,
    SendMessageRequest,
    StartConversationRequest,
)
from ....models.chat import Viewer
from ....services.conversation_selectors import inbox_for, select_conversation, unread_count
from ....services.response_dispatcher import response_dispatcher
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/conversations", response_model=ConversationResponse)
def start_conversation(
    request: StartConversationRequest,
    response: Response,
    viewer: Viewer = Depends(get_viewer),
):
    """
    Start a conversation about a vehicle (customer only).

    Returns the existing thread with 200 when the customer already has one
    for this vehicle, 201 when a new one was created.
    """
    conversation, created = response_dispatcher.start_conversation(
        viewer,
        vehicle_id=request.vehicle_id,
        seller_id=request.seller_id,
        vehicle_name=request.vehicle_name,
        vehicle_price=request.vehicle_price,
        initial_message=request.initial_message,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return ConversationResponse(conversation=conversation, created=created)


@router.get("/conversations", response_model=InboxResponse)
def list_conversations(
    flagged: Optional[bool] = Query(default=None, description="Only flagged (true) or unflagged (false)"),
    viewer: Viewer = Depends(get_viewer),
):
    """Inbox for the viewer, newest activity first. Admins see every conversation."""
    conversations = inbox_for(viewer, flagged=flagged)
    return InboxResponse(conversations=conversations, unread_count=unread_count(conversations, viewer))


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
def get_conversation(conversation_id: str, viewer: Viewer = Depends(get_viewer)):
    return ConversationResponse(conversation=select_conversation(conversation_id, viewer))


@router.post("/conversations/{conversation_id}/messages", response_model=ConversationResponse)
def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    viewer: Viewer = Depends(get_viewer),
):
    conversation = response_dispatcher.send_message(conversation_id, viewer, request.text)
    return ConversationResponse(conversation=conversation)


@router.post("/conversations/{conversation_id}/read", response_model=ConversationResponse)
def mark_read(conversation_id: str, viewer: Viewer = Depends(get_viewer)):
    conversation = response_dispatcher.mark_read(conversation_id, viewer)
    return ConversationResponse(conversation=conversation)


@router.post("/conversations/{conversation_id}/flag", response_model=ConversationResponse)
def flag_conversation(
    conversation_id: str,
    request: FlagRequest,
    viewer: Viewer = Depends(get_viewer),
):
    """Report a conversation to moderators."""
    conversation = response_dispatcher.flag(conversation_id, viewer, request.reason)
    return ConversationResponse(conversation=conversation)


@router.post("/conversations/{conversation_id}/flag/resolve", response_model=ConversationResponse)
def resolve_flag(conversation_id: str, viewer: Viewer = Depends(get_viewer)):
    """Clear a report (admin only)."""
    conversation = response_dispatcher.resolve_flag(conversation_id, viewer)
    logger.info(f"Report on {conversation_id} resolved by {viewer.email}")
    return ConversationResponse(conversation=conversation)
