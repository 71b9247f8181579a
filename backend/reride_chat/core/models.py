"""
ORM models for conversation persistence.

WHAT: SQLAlchemy tables for conversations and their messages
WHY: Durable, append-only message history with per-message revisions
HOW: Declarative models with constraints, relationships and indexes
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, Text, JSON,
    ForeignKey, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationRecord(Base):
    """
    Conversation table - one thread per customer/vehicle pair.

    WHAT: Participants, vehicle reference, read and flag state
    WHY: Inbox listing, unread badges and moderation need these without messages
    HOW: String primary key shared with the API document id
    """
    __tablename__ = "conversations"

    conversation_id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), nullable=False)
    customer_name = Column(String(200), nullable=False, default="")
    seller_id = Column(String(255), nullable=False)
    vehicle_id = Column(BigInteger, nullable=False)
    vehicle_name = Column(String(300), nullable=False, default="")
    vehicle_price = Column(BigInteger, nullable=True)
    is_read_by_customer = Column(Boolean, nullable=False, default=True)
    is_read_by_seller = Column(Boolean, nullable=False, default=False)
    is_flagged = Column(Boolean, nullable=False, default=False)
    flag_reason = Column(Text, nullable=True)
    flagged_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    last_message_at = Column(DateTime, nullable=False, default=_utcnow)

    messages = relationship(
        "MessageRecord",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="MessageRecord.pk",
    )

    __table_args__ = (
        CheckConstraint("vehicle_price IS NULL OR vehicle_price > 0", name="check_vehicle_price_positive"),
        Index("idx_conversation_customer", "customer_id"),
        Index("idx_conversation_seller", "seller_id"),
        Index("idx_conversation_flagged", "is_flagged"),
    )

    def __repr__(self):
        return f"<ConversationRecord(id={self.conversation_id}, vehicle={self.vehicle_name})>"


class MessageRecord(Base):
    """
    Message table - append-only conversation history.

    WHAT: One row per chat message, offer or test-drive request
    WHY: Insertion order is chronological order; rows are never deleted or reordered
    HOW: Autoincrement pk gives order, (conversation_id, message_id) is unique,
         revision is bumped on every payload status change
    """
    __tablename__ = "chat_messages"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        String(255),
        ForeignKey("conversations.conversation_id", ondelete="CASCADE"),
        nullable=False
    )
    message_id = Column(BigInteger, nullable=False)
    sender = Column(String(20), nullable=False)
    text = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False, default=_utcnow)
    is_read = Column(Boolean, nullable=False, default=False)
    type = Column(String(40), nullable=False, default="text")
    payload = Column(JSON, nullable=True)
    revision = Column(Integer, nullable=False, default=0)

    conversation = relationship("ConversationRecord", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("conversation_id", "message_id", name="unique_conversation_message"),
        CheckConstraint("sender IN ('buyer', 'seller', 'system')", name="check_message_sender"),
        CheckConstraint("type IN ('text', 'offer', 'test_drive_request')", name="check_message_type"),
        CheckConstraint("revision >= 0", name="check_revision_non_negative"),
        Index("idx_message_conversation_order", "conversation_id", "pk"),
    )

    def __repr__(self):
        return f"<MessageRecord(conversation={self.conversation_id}, id={self.message_id}, type={self.type})>"
