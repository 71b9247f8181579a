"""
Negotiation view rendering.

WHAT: Turn offer messages into display-ready views for one viewer
WHY: Clients should not re-derive headlines, price strings or legal actions
HOW: Pure functions over Conversation + Viewer; actions come from the state machine
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .offer_state_machine import available_actions, latest_offer, offers_in
from ..models.chat import ChatMessage, Conversation, OfferStatus, SenderRole, Viewer
from ..utils.currency import format_inr


STATUS_LABELS = {
    OfferStatus.PENDING: "Pending",
    OfferStatus.ACCEPTED: "Accepted",
    OfferStatus.REJECTED: "Rejected",
    OfferStatus.COUNTERED: "Countered",
}


class OfferView(BaseModel):
    """One rendered offer card."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message_id: int
    revision: int
    sender: SenderRole
    headline: str
    offer_price: int
    offer_price_display: str
    original_price: Optional[int] = None
    original_price_display: Optional[str] = None
    listing_price_display: Optional[str] = None
    status: OfferStatus
    status_label: str
    actions: list[str] = Field(default_factory=list)


class NegotiationView(BaseModel):
    """Every offer in a conversation, as seen by one viewer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conversation_id: str
    offers: list[OfferView] = Field(default_factory=list)
    latest_offer_id: Optional[int] = None
    available_actions: list[str] = Field(default_factory=list)


def render_offer(message: ChatMessage, viewer: Viewer, conversation: Conversation) -> OfferView:
    """
    Render a single offer message.

    A fresh offer reads "Offer Made"; an offer that answers another one
    (it carries ``counterPrice``) reads "Counter-Offer", whichever side
    sent it. ``originalPrice`` is the superseded price on counter-offers.
    """
    offer = message.offer
    if offer is None:
        raise ValueError(f"Message {message.id} is not an offer")

    return OfferView(
        message_id=message.id,
        revision=message.revision,
        sender=message.sender,
        headline="Counter-Offer" if offer.counter_price is not None else "Offer Made",
        offer_price=offer.offer_price,
        offer_price_display=format_inr(offer.offer_price),
        original_price=offer.counter_price,
        original_price_display=format_inr(offer.counter_price),
        listing_price_display=format_inr(conversation.vehicle_price),
        status=offer.status,
        status_label=STATUS_LABELS[offer.status],
        actions=available_actions(message, viewer, conversation),
    )


def render_negotiation(conversation: Conversation, viewer: Viewer) -> NegotiationView:
    latest = latest_offer(conversation)
    views = [render_offer(m, viewer, conversation) for m in offers_in(conversation)]
    return NegotiationView(
        conversation_id=conversation.id,
        offers=views,
        latest_offer_id=latest.id if latest else None,
        available_actions=views[-1].actions if views else [],
    )
