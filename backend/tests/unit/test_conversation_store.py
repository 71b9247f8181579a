"""
Unit tests for the conversation store.

WHAT: Append order, id allocation, revision compare-and-set, read and flag state
WHY: The store is the only place lost updates can be caught
HOW: Real SQLite database (created per test by conftest)
"""

import pytest
from sqlalchemy.exc import IntegrityError

from reride_chat.core.conversation_store import conversation_store
from reride_chat.core.database import SessionLocal
from reride_chat.core.models import MessageRecord
from reride_chat.models.chat import Conversation, MessageDraft, OfferStatus, SenderRole, TestDriveStatus
from reride_chat.services.offer_state_machine import plan_response
from reride_chat.services.test_drive import build_request_draft
from reride_chat.utils.exceptions import (
    ConversationNotFoundException,
    MessageNotFoundException,
    StaleOfferError,
    ValidationException,
)


@pytest.mark.unit
class TestCreateAndRead:

    def test_create_is_idempotent(self, conversation):
        again, created = conversation_store.create_conversation(conversation)
        assert created is False
        assert again.id == conversation.id

    def test_missing_conversation(self):
        assert conversation_store.find_conversation("nobody-1") is None
        with pytest.raises(ConversationNotFoundException):
            conversation_store.get_conversation("nobody-1")

    def test_imported_document_keeps_messages(self):
        document = {
            "id": "old@example.com-7",
            "customerId": "old@example.com",
            "sellerId": "dealer@example.com",
            "vehicleId": 7,
            "messages": [
                {"id": 10, "sender": "user", "text": "Offer: 90000", "type": "offer",
                 "payload": {"offerPrice": 90000, "status": "rejected"}, "revision": 1},
                {"id": 11, "sender": "system", "text": "Offer rejected."},
            ],
        }
        stored, created = conversation_store.create_conversation(Conversation.from_document(document))

        assert created is True
        assert [m.id for m in stored.messages] == [10, 11]
        assert stored.messages[0].offer.status == OfferStatus.REJECTED
        assert stored.messages[0].revision == 1


@pytest.mark.unit
class TestAppend:

    def test_ids_strictly_increase(self, conversation):
        for i in range(5):
            conversation_store.append_message(conversation.id, MessageDraft(sender="buyer", text=f"m{i}"))
        ids = [m.id for m in conversation_store.get_conversation(conversation.id).messages]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_append_sets_read_flags(self, conversation):
        after_buyer = conversation_store.append_message(conversation.id, MessageDraft(sender="buyer", text="hi"))
        assert after_buyer.is_read_by_customer is True
        assert after_buyer.is_read_by_seller is False

        after_seller = conversation_store.append_message(conversation.id, MessageDraft(sender="seller", text="hello"))
        assert after_seller.is_read_by_seller is True
        assert after_seller.is_read_by_customer is False

    def test_append_moves_last_message_at(self, conversation):
        updated = conversation_store.append_message(conversation.id, MessageDraft(sender="buyer", text="hi"))
        assert updated.last_message_at >= conversation.last_message_at
        assert updated.last_message_at == updated.messages[-1].timestamp

    def test_append_to_missing_conversation(self):
        with pytest.raises(ConversationNotFoundException):
            conversation_store.append_message("nobody-1", MessageDraft(sender="buyer", text="hi"))


@pytest.mark.unit
class TestStatusUpdates:

    def test_update_bumps_revision(self, offered):
        offer = offered.messages[-1]
        updated = conversation_store.update_message_status(offered.id, offer.id, "rejected", expected_revision=0)
        message = updated.find_message(offer.id)
        assert message.offer.status == OfferStatus.REJECTED
        assert message.revision == 1

    def test_stale_revision_is_refused(self, offered):
        offer = offered.messages[-1]
        conversation_store.update_message_status(offered.id, offer.id, "rejected", expected_revision=0)
        with pytest.raises(StaleOfferError):
            conversation_store.update_message_status(offered.id, offer.id, "accepted", expected_revision=0)
        assert conversation_store.get_conversation(offered.id).find_message(offer.id).offer.status == OfferStatus.REJECTED

    def test_offer_cannot_take_test_drive_status(self, offered):
        offer = offered.messages[-1]
        with pytest.raises(ValidationException):
            conversation_store.update_message_status(offered.id, offer.id, "confirmed", expected_revision=0)

        reloaded = conversation_store.get_conversation(offered.id).find_message(offer.id)
        assert reloaded.offer.status == OfferStatus.PENDING
        assert reloaded.revision == 0

    def test_test_drive_cannot_be_countered(self, conversation, customer):
        requested = conversation_store.append_message(
            conversation.id, build_request_draft(customer, "2024-05-04", "11:00")
        ).messages[-1]
        with pytest.raises(ValidationException):
            conversation_store.update_message_status(
                conversation.id, requested.id, OfferStatus.COUNTERED, expected_revision=0
            )

        updated = conversation_store.update_message_status(
            conversation.id, requested.id, TestDriveStatus.CONFIRMED, expected_revision=0
        )
        assert updated.find_message(requested.id).payload.status == TestDriveStatus.CONFIRMED

    def test_unknown_message(self, offered):
        with pytest.raises(MessageNotFoundException):
            conversation_store.update_message_status(offered.id, 123, "accepted", expected_revision=0)

    def test_lost_update_leaves_no_partial_write(self, offered, seller):
        """Two responders plan against the same snapshot; only the first commits."""
        offer_id = offered.messages[-1].id
        first = plan_response(offered, offer_id, seller, "accept")
        second = plan_response(offered, offer_id, seller, "counter", counter_price=550000)

        conversation_store.commit_offer_transition(first)
        with pytest.raises(StaleOfferError):
            conversation_store.commit_offer_transition(second)

        final = conversation_store.get_conversation(offered.id)
        assert final.find_message(offer_id).offer.status == OfferStatus.ACCEPTED
        assert [m.text for m in final.messages] == ["Offer: 500000", "Offer accepted."]

    def test_commit_counter(self, offered, seller):
        offer_id = offered.messages[-1].id
        transition = plan_response(offered, offer_id, seller, "counter", counter_price=550000)
        updated = conversation_store.commit_offer_transition(transition)

        assert len(updated.messages) == 2
        assert updated.find_message(offer_id).offer.status == OfferStatus.COUNTERED
        counter = updated.messages[-1]
        assert counter.sender == SenderRole.SELLER
        assert counter.offer.status == OfferStatus.PENDING
        assert counter.offer.counter_price == 500000
        assert counter.id > offer_id
        assert updated.is_read_by_seller is True
        assert updated.is_read_by_customer is False


@pytest.mark.unit
class TestReadAndFlag:

    def test_mark_read_only_touches_other_party(self, conversation):
        conversation_store.append_message(conversation.id, MessageDraft(sender="buyer", text="hi"))
        conversation_store.append_message(conversation.id, MessageDraft(sender="seller", text="hello"))

        updated = conversation_store.mark_read(conversation.id, SenderRole.SELLER)
        by_sender = {m.sender: m.is_read for m in updated.messages}
        assert by_sender[SenderRole.BUYER] is True
        assert by_sender[SenderRole.SELLER] is False
        assert updated.is_read_by_seller is True

    def test_mark_read_keeps_revision(self, offered):
        updated = conversation_store.mark_read(offered.id, SenderRole.SELLER)
        assert updated.messages[-1].is_read is True
        assert updated.messages[-1].revision == 0

    def test_flag_and_resolve(self, conversation):
        flagged = conversation_store.flag(conversation.id, "Asked for payment outside the platform")
        assert flagged.is_flagged is True
        assert flagged.flag_reason == "Asked for payment outside the platform"
        assert flagged.flagged_at is not None

        resolved = conversation_store.resolve_flag(conversation.id)
        assert resolved.is_flagged is False
        assert resolved.flag_reason is None
        assert resolved.flagged_at is None


@pytest.mark.unit
class TestListing:

    def _create(self, customer_id, vehicle_id, seller_id="ravi.motors@example.com"):
        stored, _ = conversation_store.create_conversation(
            Conversation(
                id=f"{customer_id}-{vehicle_id}",
                customer_id=customer_id,
                seller_id=seller_id,
                vehicle_id=vehicle_id,
            )
        )
        return stored

    def test_newest_activity_first_and_filters(self):
        a = self._create("a@example.com", 1)
        b = self._create("b@example.com", 2)
        self._create("c@example.com", 3, seller_id="other@example.com")
        conversation_store.append_message(a.id, MessageDraft(sender="buyer", text="still there?"))
        conversation_store.flag(b.id, "spam")

        assert [c.id for c in conversation_store.list_conversations(seller_id="ravi.motors@example.com")] == [a.id, b.id]
        assert [c.id for c in conversation_store.list_conversations(customer_id="B@example.com")] == [b.id]
        assert [c.id for c in conversation_store.list_conversations(flagged=True)] == [b.id]
        assert len(conversation_store.list_conversations()) == 3


@pytest.mark.unit
class TestSchemaConstraints:

    def test_duplicate_message_id_rejected(self, offered):
        session = SessionLocal()
        try:
            session.add(MessageRecord(
                conversation_id=offered.id,
                message_id=offered.messages[-1].id,
                sender="buyer",
                text="dup",
                type="text",
            ))
            with pytest.raises(IntegrityError):
                session.commit()
        finally:
            session.rollback()
            session.close()

    def test_unknown_sender_rejected(self, conversation):
        session = SessionLocal()
        try:
            session.add(MessageRecord(
                conversation_id=conversation.id, message_id=1, sender="robot", text="beep", type="text"
            ))
            with pytest.raises(IntegrityError):
                session.commit()
        finally:
            session.rollback()
            session.close()
