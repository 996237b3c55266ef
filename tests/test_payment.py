import json
from decimal import Decimal

import pytest

from chatbot.core.exceptions import InputValidationError, OrderNotFoundError, PaymentError
from chatbot.database import unit_of_work
from chatbot.models import ConversationState, PaymentStatus
from chatbot.services.cart import CartStore
from chatbot.services.checkout import PaymentCoordinator
from chatbot.services.ledger import OrderLedger
from chatbot.services.payment import CheckoutResult, MockPaymentService
from chatbot.services.payment.base import from_minor_units, to_minor_units
from chatbot.services.sessions import SessionStore


def _webhook(order_id, amount_minor, reference="ref-hook", event="charge.success", device_id=None):
    return json.dumps({
        "event": event,
        "data": {
            "reference": reference,
            "amount": amount_minor,
            "metadata": {"order_id": order_id, "device_id": device_id},
        },
    }).encode()


@pytest.fixture
async def pending_order(db, device):
    """An unpaid order whose device is waiting in payment_pending."""
    async with unit_of_work(db):
        await CartStore(db).add(device, 1)
        await CartStore(db).add(device, 3)
        order = await OrderLedger(db).place(device)
        await SessionStore(db).set_state(device, ConversationState.PAYMENT_PENDING)
    return order


# =============================================================================
# MOCK GATEWAY
# =============================================================================

def test_minor_unit_conversion():
    assert to_minor_units(Decimal("3300.50")) == 330050
    assert from_minor_units(330050) == Decimal("3300.50")


async def test_mock_checkout_then_verify(payments):
    checkout = await payments.initialize_checkout(7, Decimal("3300.00"), "ada@example.com", "dev-7")

    assert checkout.success is True
    assert checkout.reference.startswith("ORDER-7-")
    assert checkout.authorization_url.endswith(f"/payment-callback.html?reference={checkout.reference}")

    verification = await payments.verify_payment(checkout.reference)
    assert verification.success is True
    assert verification.order_id == 7
    assert verification.device_id == "dev-7"
    assert verification.amount == Decimal("3300.00")


async def test_mock_rejects_non_positive_amount(payments):
    checkout = await payments.initialize_checkout(7, Decimal("0"), "ada@example.com")

    assert checkout.success is False
    assert checkout.error_code == "invalid_amount"


async def test_mock_verify_unknown_reference(payments):
    verification = await payments.verify_payment("ORDER-1-0-abcdef")

    assert verification.success is False
    assert verification.status == "not_found"


async def test_mock_declines_at_full_failure_rate():
    payments = MockPaymentService(failure_rate=1.0)
    checkout = await payments.initialize_checkout(3, Decimal("500"), "ada@example.com")

    verification = await payments.verify_payment(checkout.reference)

    assert verification.success is False
    assert verification.status == "failed"
    assert verification.error_message


async def test_mock_webhook_parsing(payments):
    assert await payments.verify_webhook(b"not json", None) is None

    ignored = await payments.verify_webhook(_webhook(1, 100, event="charge.failed"), None)
    assert ignored.success is False
    assert ignored.status == "charge.failed"

    settled = await payments.verify_webhook(_webhook(4, 250000, device_id="dev-4"), None)
    assert settled.success is True
    assert (settled.order_id, settled.device_id, settled.amount) == (4, "dev-4", Decimal("2500.00"))


# =============================================================================
# COORDINATOR
# =============================================================================

async def test_initialize_unknown_order(db, payments):
    with pytest.raises(OrderNotFoundError):
        await PaymentCoordinator(db, payments).initialize(999, "ada@example.com")


async def test_initialize_paid_order_is_rejected(db, payments, pending_order):
    async with unit_of_work(db):
        await OrderLedger(db).mark_paid(pending_order.id, "ref-1")

    with pytest.raises(InputValidationError):
        await PaymentCoordinator(db, payments).initialize(pending_order.id, "ada@example.com")


async def test_initialize_gateway_failure(db, pending_order):
    class FailingGateway(MockPaymentService):
        async def initialize_checkout(self, *args, **kwargs):
            return CheckoutResult(success=False, error_message="Gateway down", error_code="api_error")

    with pytest.raises(PaymentError) as exc_info:
        await PaymentCoordinator(db, FailingGateway()).initialize(pending_order.id, "ada@example.com")
    assert exc_info.value.message == "Gateway down"


async def test_verify_marks_paid_and_releases_session(db, device, payments, pending_order):
    coordinator = PaymentCoordinator(db, payments)
    checkout = await coordinator.initialize(pending_order.id, "ada@example.com")

    verification, confirmation = await coordinator.verify(checkout.reference)

    assert verification.success is True
    assert confirmation.newly_paid is True
    assert confirmation.session_reset is True
    assert confirmation.order.payment_status == PaymentStatus.PAID
    assert confirmation.order.payment_reference == checkout.reference
    assert (await SessionStore(db).get(device)).state == ConversationState.MAIN_MENU


async def test_repeated_confirmation_has_no_further_effect(db, device, payments, pending_order):
    coordinator = PaymentCoordinator(db, payments)
    checkout = await coordinator.initialize(pending_order.id, "ada@example.com")
    await coordinator.verify(checkout.reference)

    # The customer has moved on by the time the webhook arrives
    async with unit_of_work(db):
        await SessionStore(db).set_state(device, ConversationState.ORDERING)

    confirmation = await coordinator.handle_webhook(
        _webhook(pending_order.id, to_minor_units(pending_order.total_amount), reference=checkout.reference),
        None,
    )

    assert confirmation.newly_paid is False
    assert confirmation.session_reset is False
    assert confirmation.order.payment_reference == checkout.reference
    assert (await SessionStore(db).get(device)).state == ConversationState.ORDERING


async def test_verify_failed_payment_leaves_order_pending(db, device, pending_order):
    coordinator = PaymentCoordinator(db, MockPaymentService(failure_rate=1.0))
    checkout = await coordinator.initialize(pending_order.id, "ada@example.com")

    verification, confirmation = await coordinator.verify(checkout.reference)

    assert verification.success is False
    assert confirmation is None
    assert (await OrderLedger(db).by_id(pending_order.id)).payment_status == PaymentStatus.PENDING
    assert (await SessionStore(db).get(device)).state == ConversationState.PAYMENT_PENDING


async def test_webhook_settles_order(db, device, payments, pending_order):
    confirmation = await PaymentCoordinator(db, payments).handle_webhook(
        _webhook(pending_order.id, 330000, device_id=device),
        None,
    )

    assert confirmation.newly_paid is True
    assert confirmation.order.payment_reference == "ref-hook"
    assert (await SessionStore(db).get(device)).state == ConversationState.MAIN_MENU


async def test_webhook_rejects_bad_payload_and_ignores_other_events(db, payments, pending_order):
    coordinator = PaymentCoordinator(db, payments)

    with pytest.raises(PaymentError):
        await coordinator.handle_webhook(b"{broken", None)

    assert await coordinator.handle_webhook(_webhook(pending_order.id, 1, event="charge.failed"), None) is None


async def test_amount_mismatch_is_refused(db, device, payments, pending_order):
    with pytest.raises(PaymentError):
        await PaymentCoordinator(db, payments).handle_webhook(
            _webhook(pending_order.id, 100, device_id=device),
            None,
        )

    order = await OrderLedger(db).by_id(pending_order.id)
    assert order.payment_status == PaymentStatus.PENDING
    assert (await SessionStore(db).get(device)).state == ConversationState.PAYMENT_PENDING


async def test_confirmation_releases_the_device_that_placed_the_order(db, device, payments, pending_order):
    sessions = SessionStore(db)
    async with unit_of_work(db):
        await sessions.get_or_create("other-device")
        await sessions.set_state("other-device", ConversationState.PAYMENT_PENDING)

    coordinator = PaymentCoordinator(db, payments)
    checkout = await coordinator.initialize(pending_order.id, "ada@example.com", device_id="other-device")

    verification, confirmation = await coordinator.verify(checkout.reference)

    assert verification.device_id == device
    assert confirmation.session_reset is True
    assert (await sessions.get(device)).state == ConversationState.MAIN_MENU
    assert (await sessions.get("other-device")).state == ConversationState.PAYMENT_PENDING


async def test_webhook_naming_another_device_releases_the_owner(db, device, payments, pending_order):
    sessions = SessionStore(db)
    async with unit_of_work(db):
        await sessions.get_or_create("other-device")
        await sessions.set_state("other-device", ConversationState.PAYMENT_PENDING)

    await PaymentCoordinator(db, payments).handle_webhook(
        _webhook(pending_order.id, 330000, device_id="other-device"),
        None,
    )

    assert (await sessions.get(device)).state == ConversationState.MAIN_MENU
    assert (await sessions.get("other-device")).state == ConversationState.PAYMENT_PENDING


async def test_settlement_by_another_transaction_is_not_reported_as_new(
    db, session_maker, device, payments, pending_order
):
    # db still holds the order as pending; another connection settles it first
    async with session_maker() as other:
        async with unit_of_work(other):
            await OrderLedger(other).mark_paid(pending_order.id, "ref-first")

    confirmation = await PaymentCoordinator(db, payments).handle_webhook(
        _webhook(pending_order.id, 330000, reference="ref-second"),
        None,
    )

    assert confirmation.newly_paid is False
    assert confirmation.session_reset is False
    assert confirmation.order.payment_reference == "ref-first"
    assert (await SessionStore(db).get(device)).state == ConversationState.PAYMENT_PENDING
