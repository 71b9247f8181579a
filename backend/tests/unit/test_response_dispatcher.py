"""
Unit tests for the response dispatcher.

WHAT: Start, message, offer, respond, read and flag intents
WHY: The dispatcher is where authorization is enforced, not the UI
HOW: Dispatcher against the per-test SQLite database
"""

import pytest

from reride_chat.core.conversation_store import conversation_store
from reride_chat.models.chat import MessageType, OfferStatus, SenderRole
from reride_chat.services.conversation_selectors import inbox_for, select_conversation, unread_count
from reride_chat.services.response_dispatcher import conversation_id_for, response_dispatcher
from reride_chat.utils.exceptions import (
    ActionNotAllowedError,
    ConversationAccessDenied,
    ConversationNotFoundException,
    OfferAlreadyResolvedError,
    OfferAuthorizationError,
    StaleOfferError,
    ValidationException,
)


@pytest.mark.unit
class TestStartConversation:

    def test_customer_starts_thread(self, customer):
        conversation, created = response_dispatcher.start_conversation(
            customer,
            vehicle_id=7,
            seller_id="Dealer@Example.com",
            vehicle_name="2021 Hyundai Creta SX",
            vehicle_price=1450000,
            initial_message="Is this still available?",
        )
        assert created is True
        assert conversation.id == "asha@example.com-7"
        assert conversation.seller_id == "dealer@example.com"
        assert conversation.messages[-1].text == "Is this still available?"
        assert conversation.is_read_by_seller is False

    def test_second_start_reuses_thread(self, customer, conversation):
        again, created = response_dispatcher.start_conversation(
            customer, vehicle_id=conversation.vehicle_id, seller_id=conversation.seller_id
        )
        assert created is False
        assert again.id == conversation.id

    def test_sellers_cannot_start(self, seller):
        with pytest.raises(ActionNotAllowedError):
            response_dispatcher.start_conversation(seller, vehicle_id=1, seller_id="x@example.com")

    def test_cannot_message_yourself(self, customer):
        with pytest.raises(ValidationException):
            response_dispatcher.start_conversation(customer, vehicle_id=1, seller_id=customer.email)

    def test_conversation_id_format(self):
        assert conversation_id_for(" Asha@Example.com ", 42) == "asha@example.com-42"


@pytest.mark.unit
class TestSendMessage:

    def test_participants_send(self, conversation, customer, seller):
        response_dispatcher.send_message(conversation.id, customer, "Hi")
        updated = response_dispatcher.send_message(conversation.id, seller, "  Hello!  ")
        assert [(m.sender, m.text) for m in updated.messages] == [
            (SenderRole.BUYER, "Hi"),
            (SenderRole.SELLER, "Hello!"),
        ]

    def test_empty_message(self, conversation, customer):
        with pytest.raises(ValidationException):
            response_dispatcher.send_message(conversation.id, customer, "   ")

    def test_outsider_and_admin_cannot_send(self, conversation, outsider, admin):
        with pytest.raises(ConversationAccessDenied):
            response_dispatcher.send_message(conversation.id, outsider, "hi")
        with pytest.raises(ConversationAccessDenied):
            response_dispatcher.send_message(conversation.id, admin, "hi")

    def test_unknown_conversation(self, customer):
        with pytest.raises(ConversationNotFoundException):
            response_dispatcher.send_message("nobody-1", customer, "hi")


@pytest.mark.unit
class TestMakeOffer:

    def test_customer_offer_is_pending(self, conversation, customer):
        updated = response_dispatcher.make_offer(conversation.id, customer, "500000")
        message = updated.messages[-1]
        assert message.type == MessageType.OFFER
        assert message.offer.offer_price == 500000
        assert message.offer.status == OfferStatus.PENDING
        assert message.text == "Offer: 500000"

    def test_seller_cannot_open_with_offer(self, conversation, seller):
        with pytest.raises(ActionNotAllowedError):
            response_dispatcher.make_offer(conversation.id, seller, 500000)

    @pytest.mark.parametrize("price", ["abc", "0", "-5"])
    def test_invalid_price_appends_nothing(self, conversation, customer, price):
        with pytest.raises(ValidationException):
            response_dispatcher.make_offer(conversation.id, customer, price)
        assert conversation_store.get_conversation(conversation.id).messages == []


@pytest.mark.unit
class TestRespond:

    def test_accept(self, offered, seller):
        offer_id = offered.messages[-1].id
        updated = response_dispatcher.respond(offered.id, offer_id, seller, "accept")
        assert updated.find_message(offer_id).offer.status == OfferStatus.ACCEPTED
        assert updated.messages[-1].text == "Offer accepted."

    def test_counter_then_buyer_accepts(self, offered, seller, customer):
        offer_id = offered.messages[-1].id
        countered = response_dispatcher.respond(offered.id, offer_id, seller, "counter", counter_price=550000)
        counter_id = countered.messages[-1].id

        final = response_dispatcher.respond(offered.id, counter_id, customer, "accept")
        assert final.find_message(offer_id).offer.status == OfferStatus.COUNTERED
        assert final.find_message(counter_id).offer.status == OfferStatus.ACCEPTED
        assert final.messages[-1].text == "Offer accepted."

    def test_buyer_cannot_accept_own_offer(self, offered, customer):
        with pytest.raises(OfferAuthorizationError):
            response_dispatcher.respond(offered.id, offered.messages[-1].id, customer, "accept")
        assert len(conversation_store.get_conversation(offered.id).messages) == 1

    def test_repeat_reject_is_refused_without_duplicates(self, offered, seller):
        offer_id = offered.messages[-1].id
        response_dispatcher.respond(offered.id, offer_id, seller, "reject")
        with pytest.raises(OfferAlreadyResolvedError):
            response_dispatcher.respond(offered.id, offer_id, seller, "reject")

        final = conversation_store.get_conversation(offered.id)
        assert final.find_message(offer_id).offer.status == OfferStatus.REJECTED
        assert [m.text for m in final.messages].count("Offer rejected.") == 1

    def test_client_with_old_revision_is_refused(self, offered, seller):
        offer_id = offered.messages[-1].id
        with pytest.raises(StaleOfferError):
            response_dispatcher.respond(offered.id, offer_id, seller, "accept", expected_revision=3)

    def test_invalid_counter_appends_nothing(self, offered, seller):
        with pytest.raises(ValidationException):
            response_dispatcher.respond(offered.id, offered.messages[-1].id, seller, "counter", counter_price="abc")
        final = conversation_store.get_conversation(offered.id)
        assert len(final.messages) == 1
        assert final.messages[0].offer.status == OfferStatus.PENDING


@pytest.mark.unit
class TestReadFlagAndSelectors:

    def test_seller_inbox_and_unread(self, offered, seller, customer):
        inbox = inbox_for(seller)
        assert [c.id for c in inbox] == [offered.id]
        assert unread_count(inbox, seller) == 1
        assert unread_count(inbox_for(customer), customer) == 0

        response_dispatcher.mark_read(offered.id, seller)
        assert unread_count(inbox_for(seller), seller) == 0

    def test_outsider_cannot_select(self, conversation, outsider):
        with pytest.raises(ConversationAccessDenied):
            select_conversation(conversation.id, outsider)

    def test_admin_reads_without_changing_state(self, offered, admin):
        seen = response_dispatcher.mark_read(offered.id, admin)
        assert seen.is_read_by_seller is False
        assert [c.id for c in inbox_for(admin)] == [offered.id]

    def test_report_and_resolve(self, conversation, customer, admin):
        flagged = response_dispatcher.flag(conversation.id, customer, "Rude messages")
        assert flagged.is_flagged is True
        assert [c.id for c in inbox_for(admin, flagged=True)] == [conversation.id]

        with pytest.raises(ActionNotAllowedError):
            response_dispatcher.resolve_flag(conversation.id, customer)

        resolved = response_dispatcher.resolve_flag(conversation.id, admin)
        assert resolved.is_flagged is False

    def test_report_needs_reason(self, conversation, customer):
        with pytest.raises(ValidationException):
            response_dispatcher.flag(conversation.id, customer, " ")
