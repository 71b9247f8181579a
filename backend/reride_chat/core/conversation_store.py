"""
Conversation store.

WHAT: Read/append/update operations over persisted conversations
WHY: The negotiation flow needs an append-only history and a guarded status write
HOW: SQLAlchemy sessions, one transaction per mutation, revision compare-and-set
"""

import time
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Iterator, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, selectinload
from pydantic import ValidationError

from .database import get_db
from .models import ConversationRecord, MessageRecord
from ..models.chat import (
    PAYLOAD_TYPES,
    ChatMessage,
    Conversation,
    MessageDraft,
    MessageType,
    OfferStatus,
    SenderRole,
    TestDriveStatus,
    utcnow,
)
from ..utils.exceptions import (
    BusinessException,
    ConversationNotFoundException,
    ConversationStoreError,
    MessageNotFoundException,
    StaleOfferError,
    ValidationException,
)
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..services.offer_state_machine import OfferTransition

logger = get_logger(__name__)


class ConversationStore:
    """
    Persistence collaborator for conversations.

    WHAT: CRUD over conversations plus message append and status updates
    WHY: Dispatcher and endpoints never talk to SQLAlchemy directly
    HOW: Each public method is one transaction; SQLAlchemy failures become
         ConversationStoreError, domain errors pass through unchanged
    """

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[DBSession]:
        try:
            with get_db() as db:
                yield db
        except BusinessException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Conversation store failed to {operation}: {e}", exc_info=True)
            raise ConversationStoreError(operation, str(e)) from e

    # ----- reads -----

    def find_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._transaction("load conversation") as db:
            record = self._load(db, conversation_id)
            return self._to_domain(record) if record else None

    def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.find_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundException(conversation_id)
        return conversation

    def list_conversations(
        self,
        *,
        customer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        flagged: Optional[bool] = None,
    ) -> list[Conversation]:
        """All conversations matching the filters, newest activity first."""
        with self._transaction("list conversations") as db:
            query = db.query(ConversationRecord).options(selectinload(ConversationRecord.messages))
            if customer_id is not None:
                query = query.filter(func.lower(ConversationRecord.customer_id) == customer_id.lower())
            if seller_id is not None:
                query = query.filter(func.lower(ConversationRecord.seller_id) == seller_id.lower())
            if flagged is not None:
                query = query.filter(ConversationRecord.is_flagged == flagged)
            records = query.order_by(ConversationRecord.last_message_at.desc()).all()
            return [self._to_domain(r) for r in records]

    # ----- writes -----

    def create_conversation(self, conversation: Conversation) -> tuple[Conversation, bool]:
        """
        Insert a conversation with its messages unless the id already exists.

        Returns:
            (stored conversation, created flag)
        """
        existing = self.find_conversation(conversation.id)
        if existing is not None:
            return existing, False

        try:
            with self._transaction("create conversation") as db:
                record = ConversationRecord(
                    conversation_id=conversation.id,
                    customer_id=conversation.customer_id,
                    customer_name=conversation.customer_name,
                    seller_id=conversation.seller_id,
                    vehicle_id=conversation.vehicle_id,
                    vehicle_name=conversation.vehicle_name,
                    vehicle_price=conversation.vehicle_price,
                    is_read_by_customer=conversation.is_read_by_customer,
                    is_read_by_seller=conversation.is_read_by_seller,
                    is_flagged=conversation.is_flagged,
                    flag_reason=conversation.flag_reason,
                    flagged_at=conversation.flagged_at,
                    last_message_at=conversation.last_message_at,
                )
                db.add(record)
                for message in conversation.messages:
                    db.add(self._to_record(conversation.id, message))
        except ConversationStoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                # Lost a race with another request creating the same thread
                return self.get_conversation(conversation.id), False
            raise

        logger.info(f"Created conversation {conversation.id} ({len(conversation.messages)} messages)")
        return self.get_conversation(conversation.id), True

    def append_message(
        self,
        conversation_id: str,
        draft: MessageDraft,
        *,
        author: Optional[SenderRole] = None,
    ) -> Conversation:
        """
        Append one message to the end of a conversation.

        ``author`` is the side that caused the message (defaults to the
        sender). That side's read flag is set, the other side's cleared.
        """
        with self._transaction("send message") as db:
            record = self._require(db, conversation_id)
            message = self._add_message(db, record, draft)
            self._touch(record, author or draft.sender, message.timestamp)
        logger.info(f"Appended {draft.type.value} message {message.id} to {conversation_id}")
        return self.get_conversation(conversation_id)

    def update_message_status(
        self,
        conversation_id: str,
        message_id: int,
        status: OfferStatus | TestDriveStatus | str,
        expected_revision: int,
    ) -> Conversation:
        """
        Set ``payload.status`` on one message if its revision is unchanged.

        The status must belong to the message's payload type; an offer can
        never be "confirmed" and a test drive never "countered".

        Raises:
            MessageNotFoundException, ValidationException, StaleOfferError
        """
        with self._transaction("update message status") as db:
            self._compare_and_set_status(db, conversation_id, message_id, status, expected_revision)
        return self.get_conversation(conversation_id)

    def commit_transition(
        self,
        conversation_id: str,
        message_id: int,
        status: str,
        expected_revision: int,
        appended: MessageDraft,
        responder: SenderRole,
    ) -> Conversation:
        """
        Status update plus follow-up message in a single transaction.

        Either both land or neither does; a concurrent change to the target
        message makes the whole transaction fail with StaleOfferError.
        """
        with self._transaction("respond") as db:
            self._compare_and_set_status(db, conversation_id, message_id, status, expected_revision)
            record = self._require(db, conversation_id)
            message = self._add_message(db, record, appended)
            self._touch(record, responder, message.timestamp)
        logger.info(
            f"Message {message_id} in {conversation_id} -> {status} by {responder.value}; "
            f"appended {appended.type.value} message {message.id}"
        )
        return self.get_conversation(conversation_id)

    def commit_offer_transition(self, transition: "OfferTransition") -> Conversation:
        """Persist a planned offer response (see offer_state_machine.plan_response)."""
        return self.commit_transition(
            transition.conversation_id,
            transition.message_id,
            transition.new_status.value,
            transition.expected_revision,
            transition.appended,
            transition.responder,
        )

    def mark_read(self, conversation_id: str, reader: SenderRole) -> Conversation:
        """Mark the other party's messages and the reader's thread flag as read."""
        with self._transaction("mark conversation read") as db:
            record = self._require(db, conversation_id)
            db.execute(
                update(MessageRecord)
                .where(
                    MessageRecord.conversation_id == conversation_id,
                    MessageRecord.sender.notin_([reader.value, SenderRole.SYSTEM.value]),
                    MessageRecord.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            if reader == SenderRole.BUYER:
                record.is_read_by_customer = True
            elif reader == SenderRole.SELLER:
                record.is_read_by_seller = True
        return self.get_conversation(conversation_id)

    def flag(self, conversation_id: str, reason: str) -> Conversation:
        """Flag a conversation for moderation."""
        return self._set_flag(conversation_id, reason)

    def resolve_flag(self, conversation_id: str) -> Conversation:
        return self._set_flag(conversation_id, None)

    def _set_flag(self, conversation_id: str, reason: Optional[str]) -> Conversation:
        with self._transaction("flag conversation") as db:
            record = self._require(db, conversation_id)
            record.is_flagged = reason is not None
            record.flag_reason = reason
            record.flagged_at = utcnow() if reason is not None else None
        logger.info(f"Conversation {conversation_id} flag {'set' if reason is not None else 'cleared'}")
        return self.get_conversation(conversation_id)

    # ----- helpers -----

    def _load(self, db: DBSession, conversation_id: str) -> Optional[ConversationRecord]:
        return (
            db.query(ConversationRecord)
            .options(selectinload(ConversationRecord.messages))
            .filter_by(conversation_id=conversation_id)
            .first()
        )

    def _require(self, db: DBSession, conversation_id: str) -> ConversationRecord:
        record = db.query(ConversationRecord).filter_by(conversation_id=conversation_id).first()
        if record is None:
            raise ConversationNotFoundException(conversation_id)
        return record

    def _next_message_id(self, db: DBSession, conversation_id: str) -> int:
        """Millisecond timestamp, bumped so ids stay strictly increasing."""
        current = (
            db.query(func.max(MessageRecord.message_id))
            .filter(MessageRecord.conversation_id == conversation_id)
            .scalar()
        )
        candidate = int(time.time() * 1000)
        if current is not None and candidate <= current:
            candidate = current + 1
        return candidate

    def _add_message(self, db: DBSession, record: ConversationRecord, draft: MessageDraft) -> ChatMessage:
        message = ChatMessage.from_draft(
            draft,
            message_id=self._next_message_id(db, record.conversation_id),
            timestamp=utcnow(),
        )
        db.add(self._to_record(record.conversation_id, message))
        db.flush()
        return message

    def _compare_and_set_status(
        self,
        db: DBSession,
        conversation_id: str,
        message_id: int,
        status: OfferStatus | TestDriveStatus | str,
        expected_revision: int,
    ) -> None:
        row = (
            db.query(MessageRecord)
            .filter_by(conversation_id=conversation_id, message_id=message_id)
            .first()
        )
        if row is None or row.payload is None:
            raise MessageNotFoundException(conversation_id, message_id)

        new_payload = {**row.payload, "status": getattr(status, "value", status)}
        try:
            PAYLOAD_TYPES[MessageType(row.type)].model_validate(new_payload)
        except ValidationError as e:
            raise ValidationException(
                f"Status {new_payload['status']!r} is not valid for a {row.type} message",
                field_errors=[{"field": "status", "error": str(e.errors()[0]["msg"])}]
            ) from e

        result = db.execute(
            update(MessageRecord)
            .where(
                MessageRecord.pk == row.pk,
                MessageRecord.revision == expected_revision,
            )
            .values(payload=new_payload, revision=MessageRecord.revision + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                f"Stale write on message {message_id} in {conversation_id}: "
                f"expected revision {expected_revision}, found {row.revision}"
            )
            raise StaleOfferError(message_id, expected_revision, row.revision)

    @staticmethod
    def _touch(record: ConversationRecord, author: SenderRole, when: datetime) -> None:
        record.last_message_at = when
        if author == SenderRole.BUYER:
            record.is_read_by_customer = True
            record.is_read_by_seller = False
        elif author == SenderRole.SELLER:
            record.is_read_by_seller = True
            record.is_read_by_customer = False

    @staticmethod
    def _to_record(conversation_id: str, message: ChatMessage) -> MessageRecord:
        return MessageRecord(
            conversation_id=conversation_id,
            message_id=message.id,
            sender=message.sender.value,
            text=message.text,
            timestamp=message.timestamp,
            is_read=message.is_read,
            type=message.type.value,
            payload=message.payload.model_dump(mode="json", by_alias=True) if message.payload else None,
            revision=message.revision,
        )

    @staticmethod
    def _to_domain(record: ConversationRecord) -> Conversation:
        return Conversation(
            id=record.conversation_id,
            customer_id=record.customer_id,
            customer_name=record.customer_name,
            seller_id=record.seller_id,
            vehicle_id=record.vehicle_id,
            vehicle_name=record.vehicle_name,
            vehicle_price=record.vehicle_price,
            messages=[
                ChatMessage(
                    id=m.message_id,
                    sender=m.sender,
                    text=m.text,
                    timestamp=m.timestamp,
                    is_read=m.is_read,
                    type=m.type,
                    payload=m.payload,
                    revision=m.revision,
                )
                for m in record.messages
            ],
            last_message_at=record.last_message_at,
            is_read_by_seller=record.is_read_by_seller,
            is_read_by_customer=record.is_read_by_customer,
            is_flagged=record.is_flagged,
            flag_reason=record.flag_reason,
            flagged_at=record.flagged_at,
        )


# Singleton instance
conversation_store = ConversationStore()
