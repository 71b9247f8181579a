"""
Chat domain models: conversations, messages and their structured payloads.

WHAT: Conversation, ChatMessage, OfferPayload, TestDrivePayload, Viewer
WHY: One typed vocabulary shared by the state machine, renderer, store and API
HOW: Pydantic v2 models serialised in the marketplace's camelCase document shape

Offer and test-drive payloads are separate variants picked by the message
``type``, so an offer can never be ``confirmed`` and a test drive can never be
``countered``.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class SenderRole(str, enum.Enum):
    """Who authored a message."""
    BUYER = "buyer"
    SELLER = "seller"
    SYSTEM = "system"


class UserRole(str, enum.Enum):
    """Role supplied by the identity collaborator."""
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


class MessageType(str, enum.Enum):
    TEXT = "text"
    OFFER = "offer"
    TEST_DRIVE_REQUEST = "test_drive_request"


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"


class TestDriveStatus(str, enum.Enum):
    __test__ = False

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


# Sender values written by older clients
LEGACY_SENDER_ALIASES = {"user": SenderRole.BUYER.value, "customer": SenderRole.BUYER.value}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentModel(BaseModel):
    """Base model reading and writing camelCase documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OfferPayload(DocumentModel):
    """Price proposal carried by an ``offer`` message."""

    offer_price: int = Field(gt=0)
    status: OfferStatus = OfferStatus.PENDING
    # On a counter-offer: the price of the offer it supersedes
    counter_price: int | None = Field(default=None, gt=0)


class TestDrivePayload(DocumentModel):
    """Scheduling request carried by a ``test_drive_request`` message."""

    __test__ = False  # not a pytest test class

    date: str = Field(min_length=1)
    time: str = Field(min_length=1)
    status: TestDriveStatus = TestDriveStatus.PENDING


PAYLOAD_TYPES: dict[MessageType, type[DocumentModel]] = {
    MessageType.OFFER: OfferPayload,
    MessageType.TEST_DRIVE_REQUEST: TestDrivePayload,
}


class MessageDraft(DocumentModel):
    """Content of a message before the store assigns its id and timestamp."""

    sender: SenderRole
    text: str = ""
    type: MessageType = MessageType.TEXT
    payload: OfferPayload | TestDrivePayload | None = None

    @field_validator("sender", mode="before")
    @classmethod
    def normalize_sender(cls, v):
        """Map legacy sender names ('user') to buyer."""
        if isinstance(v, str):
            return LEGACY_SENDER_ALIASES.get(v, v)
        return v

    @model_validator(mode="before")
    @classmethod
    def select_payload_variant(cls, data: Any):
        """Parse a raw payload with the model matching the message type."""
        if not isinstance(data, dict):
            return data
        raw_payload = data.get("payload")
        if raw_payload is None or isinstance(raw_payload, DocumentModel):
            return data
        msg_type = MessageType(data.get("type") or MessageType.TEXT)
        payload_cls = PAYLOAD_TYPES.get(msg_type)
        if payload_cls is None:
            # Plain text messages carry no structured payload
            return {**data, "payload": None}
        return {**data, "payload": payload_cls.model_validate(raw_payload)}

    @model_validator(mode="after")
    def check_payload_matches_type(self):
        """An offer needs an offer payload, a test drive a test-drive payload."""
        expected = PAYLOAD_TYPES.get(self.type)
        if expected is None:
            if self.payload is not None:
                raise ValueError(f"{self.type.value} messages carry no payload")
        elif not isinstance(self.payload, expected):
            raise ValueError(f"{self.type.value} messages require a {expected.__name__}")
        return self

    @property
    def offer(self) -> OfferPayload | None:
        return self.payload if isinstance(self.payload, OfferPayload) else None

    @property
    def test_drive(self) -> TestDrivePayload | None:
        return self.payload if isinstance(self.payload, TestDrivePayload) else None


class ChatMessage(MessageDraft):
    """A stored message in a conversation."""

    id: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=utcnow)
    is_read: bool = False
    revision: int = Field(default=0, ge=0)

    @field_validator("timestamp")
    @classmethod
    def timestamp_in_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_draft(cls, draft: MessageDraft, message_id: int, timestamp: datetime) -> "ChatMessage":
        return cls(id=message_id, timestamp=timestamp, **dict(draft))


class Conversation(DocumentModel):
    """Ordered thread between one customer and one seller about one vehicle."""

    id: str = Field(min_length=1)
    customer_id: str
    customer_name: str = ""
    seller_id: str
    vehicle_id: int
    vehicle_name: str = ""
    vehicle_price: int | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    last_message_at: datetime = Field(default_factory=utcnow)
    is_read_by_seller: bool = False
    is_read_by_customer: bool = True
    is_flagged: bool = False
    flag_reason: str | None = None
    flagged_at: datetime | None = None

    @field_validator("last_message_at", "flagged_at")
    @classmethod
    def timestamps_in_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    def find_message(self, message_id: int) -> ChatMessage | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def to_document(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON document shape."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Conversation":
        """Parse a camelCase (or snake_case) document."""
        return cls.model_validate(document)


class Viewer(BaseModel):
    """The authenticated user looking at or acting on a conversation."""

    email: str = Field(min_length=3)
    role: UserRole
    name: str = ""

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def sender_role(self) -> SenderRole | None:
        """Sender value this viewer writes messages as (admins never write)."""
        if self.role == UserRole.CUSTOMER:
            return SenderRole.BUYER
        if self.role == UserRole.SELLER:
            return SenderRole.SELLER
        return None

    def participates_in(self, conversation: Conversation) -> bool:
        """True when this viewer is the conversation's customer or seller."""
        if self.role == UserRole.CUSTOMER:
            return conversation.customer_id.lower() == self.email
        if self.role == UserRole.SELLER:
            return conversation.seller_id.lower() == self.email
        return False


ResponseAction = Literal["accept", "reject", "counter"]
TestDriveAction = Literal["confirm", "reject"]
