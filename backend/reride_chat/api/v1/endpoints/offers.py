"""
Offer negotiation endpoints.

WHAT: Make offers, render the negotiation, respond to offers
WHY: Price negotiation between a customer and a seller inside a conversation
HOW: Dispatcher for writes, negotiation_view for the viewer-specific read model
"""

from fastapi import APIRouter, Depends, status

from ...deps import get_viewer
from ....models.api_schemas import ConversationResponse, MakeOfferRequest, RespondToOfferRequest
from ....models.chat import Viewer
from ....services.conversation_selectors import select_conversation
from ....services.negotiation_view import NegotiationView, render_negotiation
from ....services.response_dispatcher import response_dispatcher

router = APIRouter()


@router.post(
    "/conversations/{conversation_id}/offers",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
def make_offer(
    conversation_id: str,
    request: MakeOfferRequest,
    viewer: Viewer = Depends(get_viewer),
):
    """Customer puts a price on the table; it starts out pending."""
    conversation = response_dispatcher.make_offer(conversation_id, viewer, request.price)
    return ConversationResponse(conversation=conversation)


@router.get("/conversations/{conversation_id}/negotiation", response_model=NegotiationView)
def get_negotiation(conversation_id: str, viewer: Viewer = Depends(get_viewer)):
    """
    Offer cards as this viewer should see them.

    WHAT: Headline, INR prices, status label and legal actions per offer
    WHY: Clients render buttons from ``actions`` instead of re-deriving the rules
    HOW: Fresh read from the store, rendered by negotiation_view
    """
    return render_negotiation(select_conversation(conversation_id, viewer), viewer)


@router.post(
    "/conversations/{conversation_id}/offers/{message_id}/respond",
    response_model=ConversationResponse,
)
def respond_to_offer(
    conversation_id: str,
    message_id: int,
    request: RespondToOfferRequest,
    viewer: Viewer = Depends(get_viewer),
):
    """Accept, reject or counter a pending offer (recipient only)."""
    conversation = response_dispatcher.respond(
        conversation_id,
        message_id,
        viewer,
        request.action,
        counter_price=request.counter_price,
        expected_revision=request.expected_revision,
    )
    return ConversationResponse(conversation=conversation)
