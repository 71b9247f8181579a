"""
Pydantic API schemas for the chat endpoints.

WHAT: Request and response models for FastAPI
WHY: Type-safe validation and serialization matching the marketplace frontend
HOW: Pydantic v2 models, camelCase on the wire, snake_case in Python
"""

from typing import Optional, List, Union
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic.alias_generators import to_camel

from .chat import Conversation, ResponseAction, TestDriveAction
from ..services.seller_suggestions import ListingSummary, Suggestion


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Conversations ==========

class StartConversationRequest(CamelModel):
    """Customer opens a thread about a vehicle listing."""
    vehicle_id: int = Field(..., ge=0, description="Listing ID")
    seller_id: str = Field(..., min_length=3, max_length=255, description="Seller email")
    vehicle_name: str = Field(default="", max_length=300)
    vehicle_price: Optional[int] = Field(default=None, gt=0, description="Listing price in rupees")
    initial_message: Optional[str] = Field(default=None, max_length=2000)


class ConversationResponse(CamelModel):
    """A conversation document plus whether this call created it."""
    conversation: Conversation
    created: bool = False


class InboxResponse(CamelModel):
    conversations: List[Conversation]
    unread_count: int = 0


class SendMessageRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=2000)


class FlagRequest(CamelModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ========== Offers ==========

class MakeOfferRequest(CamelModel):
    # Raw form input, parsed by validate_offer_price; strict so JSON booleans are not read as 1
    price: Union[StrictInt, StrictStr] = Field(..., description="Offer amount in whole rupees")


class RespondToOfferRequest(CamelModel):
    action: ResponseAction
    counter_price: Optional[Union[StrictInt, StrictStr]] = Field(default=None, description="Required when action is 'counter'")
    expected_revision: Optional[int] = Field(default=None, ge=0, description="Revision the client last saw")


# ========== Test drives ==========

class TestDriveRequest(CamelModel):
    __test__ = False

    date: str = Field(..., min_length=1, max_length=40)
    time: str = Field(..., min_length=1, max_length=40)


class RespondToTestDriveRequest(CamelModel):
    action: TestDriveAction
    expected_revision: Optional[int] = Field(default=None, ge=0)


# ========== Seller suggestions ==========

class SellerSuggestionsRequest(CamelModel):
    listings: List[ListingSummary] = Field(default_factory=list)


class SellerSuggestionsResponse(CamelModel):
    suggestions: List[Suggestion]
