"""
Order domain rules.

Everything here works on plain schema objects and book documents and never
touches the database or the payment gateway; `checkout` loads and persists.
"""
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from errors import AmountMismatch, InsufficientStock, InvalidState, NotFound
from schemas import CartLine, Order, OrderItem, OrderSummary, PaymentDetails, RefundDetails, ShippingAddress, TimelineEntry

AMOUNT_TOLERANCE = 0.01
NOT_CANCELLABLE = ("shipped", "out-for-delivery", "delivered", "cancelled", "returned")


class StockDelta(NamedTuple):
    book_id: str
    stock: int
    sales: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


def round_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_minor_units(amount: float) -> int:
    """Rupees to paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def price_cart(lines: Iterable[CartLine], books: Dict[str, dict]) -> Tuple[List[OrderItem], float]:
    """Validate cart lines against current catalog state.

    `books` maps the requested book ids to their current documents (missing
    ids are simply absent). Returns the line items, each snapshotting the
    book's present title/author/image/price, and the authoritative subtotal.
    Quantities for a book listed on several lines are checked together.
    """
    requested: Dict[str, int] = OrderedDict()
    for line in lines:
        requested[line.book_id] = requested.get(line.book_id, 0) + line.quantity

    items = []
    subtotal = Decimal(0)
    for book_id, quantity in requested.items():
        book = books.get(book_id)
        if not book or not book.get("isActive", True):
            raise NotFound(f"Book with ID {book_id} not found")
        if not book.get("inStock") or quantity > int(book.get("stockCount", 0)):
            raise InsufficientStock(f"Insufficient stock for {book.get('title')}")
        price = float(book.get("price", 0))
        subtotal += Decimal(str(price)) * quantity
        items.append(OrderItem(
            book=book_id,
            quantity=quantity,
            price=price,
            title=book.get("title"),
            author=book.get("author"),
            image=book.get("image"),
        ))
    return items, round_money(float(subtotal))


def check_declared_amount(declared: float, subtotal: float) -> None:
    if abs(Decimal(str(declared)) - Decimal(str(subtotal))) > Decimal(str(AMOUNT_TOLERANCE)):
        raise AmountMismatch()


def calculate_totals(order: Order) -> Order:
    summary = order.order_summary
    subtotal = sum(Decimal(str(item.price)) * item.quantity for item in order.items)
    summary.subtotal = round_money(float(subtotal))
    summary.total = round_money(summary.subtotal + summary.shipping_cost + summary.tax - summary.discount)
    return order


def format_order_number(timestamp_ms: int, sequence: int) -> str:
    return f"TB{str(timestamp_ms)[-6:]}{sequence:04d}"


def new_order(user_id: str, items: List[OrderItem], shipping_address: ShippingAddress,
              gateway_order_id: str, order_number: str) -> Order:
    order = Order(
        order_number=order_number,
        user=user_id,
        items=items,
        shipping_address=shipping_address,
        billing_address=shipping_address,
        order_summary=OrderSummary(subtotal=0, total=0),
        payment_details=PaymentDetails(method="razorpay", razorpay_order_id=gateway_order_id),
        timeline=[TimelineEntry(status="pending", message="Order created, awaiting payment")],
    )
    return calculate_totals(order)


def add_event(order: Order, status: str, message: str, updated_by: Optional[str] = None) -> TimelineEntry:
    entry = TimelineEntry(status=status, message=message, updated_by=updated_by)
    order.timeline.append(entry)
    return entry


def transition(order: Order, status: str, message: Optional[str] = None,
               updated_by: Optional[str] = None) -> TimelineEntry:
    """Set the order status. Every call appends exactly one timeline entry."""
    order.order_status = status
    return add_event(order, status, message or f"Order status updated to {status}", updated_by)


def mark_paid(order: Order, payment_id: str, signature: str) -> None:
    details = order.payment_details
    details.status = "paid"
    details.payment_id = payment_id
    details.razorpay_signature = signature
    details.paid_at = _now()
    details.failure_reason = None
    transition(order, "confirmed", "Payment confirmed, order processing")


def mark_payment_failed(order: Order, reason: str, message: Optional[str] = None) -> None:
    order.payment_details.status = "failed"
    order.payment_details.failure_reason = reason
    add_event(order, "failed", message or f"Payment failed: {reason}")


def apply_admin_status(order: Order, status: str, admin_id: Optional[str] = None,
                       tracking_number: Optional[str] = None, notes: Optional[str] = None) -> None:
    if tracking_number:
        order.shipping_details.tracking_id = tracking_number
    if notes:
        order.admin_notes = notes
    transition(order, status, notes or f"Order {status}", updated_by=admin_id)
    now = _now()
    if status == "shipped" and not order.shipped_at:
        order.shipped_at = now
    if status == "delivered" and not order.delivered_at:
        order.delivered_at = now
        order.shipping_details.actual_delivery = now


def cancel(order: Order, user_id: Optional[str] = None, reason: Optional[str] = None) -> List[StockDelta]:
    """Cancel the order and return the stock restorations to apply.

    Sales are only taken back for orders whose payment went through, since
    only those were counted as sales.
    """
    if order.order_status in NOT_CANCELLABLE:
        raise InvalidState("Order cannot be cancelled at this stage")
    was_paid = order.payment_details.status == "paid"
    transition(order, "cancelled", reason or "Cancelled by customer", updated_by=user_id)
    order.cancellation_reason = reason
    order.cancelled_at = _now()
    if was_paid:
        order.refund_details = RefundDetails(amount=order.order_summary.total, reason=reason or "Order cancelled")
    return [StockDelta(item.book, item.quantity, -item.quantity if was_paid else 0) for item in order.items]


def stock_settlements(order: Order) -> List[StockDelta]:
    return [StockDelta(item.book, -item.quantity, item.quantity) for item in order.items]
