"""
Seller suggestion endpoint.

WHAT: AI tips for a seller's listings and unreplied conversations
WHY: Dashboard nudges (reply now, adjust price, improve listing)
HOW: Seller's inbox from the store plus posted listing summaries, sent to the LLM
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ...deps import get_viewer
from ....models.api_schemas import SellerSuggestionsRequest, SellerSuggestionsResponse
from ....models.chat import UserRole, Viewer
from ....services.conversation_selectors import inbox_for
from ....services.seller_suggestions import generate_seller_suggestions
from ....utils.exceptions import ActionNotAllowedError

router = APIRouter()


@router.post("/suggestions/seller", response_model=SellerSuggestionsResponse)
async def seller_suggestions(
    request: SellerSuggestionsRequest,
    viewer: Viewer = Depends(get_viewer),
):
    """
    Generate suggestions for the calling seller.

    Provider failures map to LLM_* error responses; an unusable model reply
    returns an empty list.
    """
    if viewer.role != UserRole.SELLER:
        raise ActionNotAllowedError("request seller suggestions", viewer.role.value, [])

    suggestions = await generate_seller_suggestions(
        await run_in_threadpool(inbox_for, viewer), request.listings
    )
    return SellerSuggestionsResponse(suggestions=suggestions)
