"""
AI seller suggestions.

WHAT: Ask a chat model for pricing, listing-quality and urgent-inquiry tips
WHY: Sellers miss unreplied buyers and weak listings on a busy dashboard
HOW: Summarise unreplied conversations and published listings as JSON,
     prompt the configured LLM provider, validate its JSON reply
"""

import json
import re
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..core.config import settings
from ..llm import LLMProvider, PromptMessage, get_provider
from ..models.chat import Conversation, SenderRole
from ..utils.logger import get_logger

logger = get_logger(__name__)

JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", flags=re.IGNORECASE)

SYSTEM_PROMPT = (
    "You are an expert AI Sales Assistant for a used vehicle marketplace. "
    "Your goal is to provide actionable suggestions to a seller to help them sell "
    "their vehicles faster and improve customer communication."
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ListingSummary(_CamelModel):
    """What the model needs to know about one of the seller's listings."""

    id: int
    name: str
    price: int
    mileage: Optional[int] = None
    description_length: int = 0
    image_count: int = 0
    views: int = 0
    inquiries: int = 0
    status: str = "published"


class Suggestion(_CamelModel):
    type: Literal["pricing", "listing_quality", "urgent_inquiry"]
    title: str
    description: str
    target_id: Union[int, str]
    priority: Literal["high", "medium", "low"]

    @field_validator("type", "priority", mode="before")
    @classmethod
    def lower_case(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


def summarize_unreplied(conversations: list[Conversation]) -> list[dict]:
    """Conversations the seller has not read whose last word is not the seller's."""
    summary = []
    for c in conversations:
        if not c.messages or c.is_read_by_seller:
            continue
        last = c.messages[-1]
        if last.sender == SenderRole.SELLER:
            continue
        summary.append({
            "id": c.id,
            "vehicleName": c.vehicle_name,
            "isReadBySeller": c.is_read_by_seller,
            "lastMessageTimestamp": c.last_message_at.isoformat(),
            "lastMessageText": last.text,
            "lastMessageSender": last.sender.value,
        })
    return summary


def build_prompt(listings: list[ListingSummary], unreplied: list[dict]) -> list[PromptMessage]:
    published = [l.model_dump(by_alias=True) for l in listings if l.status == "published"]
    user_prompt = f"""Analyze the following JSON data which contains the seller's current vehicle listings and un-replied customer inquiries.

**Active Vehicle Listings:**
{json.dumps(published, indent=2)}

**Un-replied Customer Inquiries:**
{json.dumps(unreplied, indent=2)}

Based on this data, provide up to {settings.MAX_SUGGESTIONS} high-impact suggestions. Categorize them into 'pricing', 'listing_quality', or 'urgent_inquiry'.
- For pricing suggestions, identify vehicles that might be over or underpriced. A vehicle with high views but very few inquiries could be overpriced.
- For listing quality, suggest improvements. A vehicle with fewer than 3 images or a description shorter than 50 characters is a good candidate.
- For urgent inquiries, identify unread messages from customers, especially those asking about price, availability or test drives.

Respond ONLY with a JSON object containing a "suggestions" key, which is an array of objects with keys
"type", "title", "description", "targetId" (numeric vehicle id, or conversation id string) and "priority" ('high', 'medium', 'low').
If no meaningful suggestions can be made, return {{"suggestions": []}}."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def parse_suggestions(text: str) -> list[Suggestion]:
    """
    Parse the model's reply.

    Malformed JSON yields an empty list; individual malformed entries are
    dropped. Target ids are strings for conversations, ints for vehicles.
    """
    try:
        data = json.loads(JSON_FENCE.sub("", text.strip()))
    except json.JSONDecodeError as e:
        logger.warning(f"Seller suggestions: model returned invalid JSON ({e})")
        return []

    raw_items = data.get("suggestions") if isinstance(data, dict) else None
    if not isinstance(raw_items, list):
        return []

    suggestions = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        try:
            suggestion = Suggestion.model_validate(item)
        except ValidationError as e:
            logger.debug(f"Dropping malformed suggestion {item!r}: {e.error_count()} errors")
            continue
        if suggestion.type == "urgent_inquiry":
            suggestion.target_id = str(suggestion.target_id)
        elif isinstance(suggestion.target_id, str):
            if not suggestion.target_id.strip().isdigit():
                continue
            suggestion.target_id = int(suggestion.target_id)
        suggestions.append(suggestion)

    return suggestions[:settings.MAX_SUGGESTIONS]


async def generate_seller_suggestions(
    conversations: list[Conversation],
    listings: list[ListingSummary],
    provider: LLMProvider | None = None,
) -> list[Suggestion]:
    """
    Suggestions for one seller's dashboard.

    Provider failures (timeouts, unreachable endpoint, bad gateway) propagate
    to the caller; only an unusable model reply degrades to [].
    """
    unreplied = summarize_unreplied(conversations)
    if not unreplied and not any(l.status == "published" for l in listings):
        return []

    provider = provider or get_provider()
    result = await provider.generate(
        build_prompt(listings, unreplied),
        temperature=settings.LLM_DEFAULT_TEMPERATURE,
        max_tokens=settings.LLM_DEFAULT_MAX_TOKENS,
    )
    suggestions = parse_suggestions(result.text)
    logger.info(
        f"Seller suggestions: {len(suggestions)} from {len(unreplied)} unreplied conversations, "
        f"{len(listings)} listings"
    )
    return suggestions
