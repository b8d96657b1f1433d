"""
Order placement, payment confirmation, cancellation and status updates.

These functions orchestrate the store, the payment gateway and the rules in
`orders`. They raise errors from `errors`; nothing here knows about HTTP.
"""
import logging
import time
from typing import Callable, List, Optional, Tuple

from errors import Forbidden, InvalidState, NotFound, PaymentVerificationFailed, ServiceUnavailable
from orders import (
    StockDelta,
    apply_admin_status,
    cancel,
    check_declared_amount,
    format_order_number,
    mark_paid,
    mark_payment_failed,
    new_order,
    price_cart,
    stock_settlements,
    to_minor_units,
)
from payments import verify_signature
from schemas import CreatePaymentOrderBody, Order, StatusUpdateBody, VerifyPaymentBody

logger = logging.getLogger(__name__)


def _load_order(store, order_id: str) -> Order:
    order = store.get_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


def _load_owned_order(store, order_id: str, user_id: str, message: str = "Access denied") -> Order:
    order = _load_order(store, order_id)
    if order.user != user_id:
        raise Forbidden(message)
    return order


def apply_stock_deltas(store, deltas: List[StockDelta], on_failure: Optional[Callable[[], None]] = None) -> None:
    """Apply every delta or none of them.

    Inside a transaction a failure aborts everything; outside one the deltas
    already applied are reversed and `on_failure` runs before re-raising.
    """
    applied = []
    try:
        for delta in deltas:
            book = store.adjust_stock(delta.book_id, delta.stock, delta.sales)
            if book is None:
                raise NotFound(f"Book with ID {delta.book_id} not found")
            applied.append(delta)
            if not book.get("inStock"):
                logger.info("Book %s is now out of stock", delta.book_id)
    except Exception:
        if not store.transactional:
            logger.error("Stock update failed, reverting %d applied change(s)", len(applied))
            for delta in reversed(applied):
                store.adjust_stock(delta.book_id, -delta.stock, -delta.sales)
            if on_failure is not None:
                on_failure()
        raise


def place_order(store, gateway, user_id: str, body: CreatePaymentOrderBody,
                user_email: Optional[str] = None) -> Tuple[Order, dict]:
    books = store.get_books(line.book_id for line in body.items)
    items, subtotal = price_cart(body.items, books)
    check_declared_amount(body.amount, subtotal)
    if gateway is None:
        raise ServiceUnavailable()

    order_number = format_order_number(int(time.time() * 1000), store.next_order_sequence())
    gateway_order = gateway.create_order(
        amount=to_minor_units(subtotal),
        currency=body.currency.upper(),
        receipt=order_number,
        notes={"userId": user_id, "userEmail": user_email or ""},
    )
    order = new_order(user_id, items, body.shipping_address, gateway_order["id"], order_number)
    store.insert_order(order)
    logger.info("Order %s created for user %s, total %.2f", order.order_number, user_id,
                order.order_summary.total)
    return order, gateway_order


def confirm_payment(store, secret: str, user_id: str, body: VerifyPaymentBody) -> Order:
    order = _load_owned_order(store, body.order_id, user_id)
    if not secret:
        logger.error("Razorpay key secret not configured, cannot verify order %s", order.order_number)
        raise ServiceUnavailable()
    valid = verify_signature(secret, body.gateway_order_id, body.gateway_payment_id, body.gateway_signature)

    if order.payment_details.status == "paid":
        if not valid:
            raise PaymentVerificationFailed()
        if order.payment_details.payment_id == body.gateway_payment_id:
            return order
        raise InvalidState("Order has already been paid")
    if order.order_status == "cancelled":
        raise InvalidState("Order has been cancelled")

    if not valid or body.gateway_order_id != order.payment_details.razorpay_order_id:
        logger.warning("Payment verification failed for order %s", order.order_number)
        mark_payment_failed(order, "Invalid signature", "Payment verification failed")
        store.save_order(order, unless_paid=True)
        raise PaymentVerificationFailed()

    previous = order.model_copy(deep=True)
    mark_paid(order, body.gateway_payment_id, body.gateway_signature)
    with store.unit_of_work():
        if not store.save_order(order, expected_status=previous.order_status, unless_paid=True):
            # a concurrent request changed the order first
            current = _load_order(store, body.order_id)
            if (current.payment_details.status == "paid"
                    and current.payment_details.payment_id == body.gateway_payment_id):
                return current
            raise InvalidState("Order was updated by another request, please try again")
        apply_stock_deltas(store, stock_settlements(order), on_failure=lambda: store.save_order(previous))
    logger.info("Payment %s confirmed for order %s", body.gateway_payment_id, order.order_number)
    return order


def record_payment_failure(store, user_id: str, order_id: str, error: Optional[dict] = None) -> Order:
    order = _load_owned_order(store, order_id, user_id)
    if order.payment_details.status == "paid":
        raise InvalidState("Order has already been paid")
    description = (error or {}).get("description")
    mark_payment_failed(order, description or "Payment failed", f"Payment failed: {description or 'Unknown error'}")
    store.save_order(order, unless_paid=True)
    logger.info("Payment failure recorded for order %s: %s", order.order_number, description)
    return order


def cancel_order(store, user_id: str, order_id: str, reason: Optional[str] = None) -> Order:
    order = _load_owned_order(store, order_id, user_id, "Not authorized to cancel this order")
    previous = order.model_copy(deep=True)
    deltas = cancel(order, user_id, reason)
    with store.unit_of_work():
        if not store.save_order(order, expected_status=previous.order_status):
            raise InvalidState("Order was updated by another request, please try again")
        apply_stock_deltas(store, deltas, on_failure=lambda: store.save_order(previous))
    logger.info("Order %s cancelled by user %s", order.order_number, user_id)
    return order


def update_status(store, admin_id: str, order_id: str, body: StatusUpdateBody) -> Order:
    order = _load_order(store, order_id)
    apply_admin_status(order, body.status, admin_id, body.tracking_number, body.notes)
    store.save_order(order)
    logger.info("Order %s status set to %s by %s", order.order_number, body.status, admin_id)
    return order


def handle_webhook_event(store, event: dict, verified: bool = True) -> None:
    """Apply a gateway webhook event. Unverified events are only logged."""
    name = event.get("event")
    payload = event.get("payload") or {}
    if not verified:
        logger.info("Webhook %s received without a configured secret, not applied", name)
        return
    if name == "payment.failed":
        entity = (payload.get("payment") or {}).get("entity") or {}
        order = store.find_order_by_gateway_id(entity.get("order_id") or "")
        if order is None:
            logger.warning("payment.failed webhook for unknown gateway order %s", entity.get("order_id"))
            return
        if order.payment_details.status in ("paid", "failed"):
            return
        reason = entity.get("error_description") or "Payment failed"
        mark_payment_failed(order, reason)
        store.save_order(order, unless_paid=True)
        logger.info("Webhook marked payment failed for order %s", order.order_number)
    elif name in ("payment.captured", "order.paid"):
        logger.info("Webhook %s received", name)
    else:
        logger.info("Unhandled webhook event: %s", name)
