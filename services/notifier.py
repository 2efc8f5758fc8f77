import logging
from typing import Any, Callable, Dict, Iterable

from sqlalchemy.orm import Session

from core.config import settings
from core.db import Database
from models.customer import Customer
from models.order import Order, OrderType
from services import email as email_service
from services.orders import OrderPlaced, StatusChanged

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "confirmed": ("Order Confirmed", "Your order has been confirmed and will be prepared soon!"),
    "preparing": ("Order Being Prepared", "Our bakers are working on your delicious treats!"),
    "ready": ("Order Ready", None),
    "out_for_delivery": ("Out for Delivery", "Your order is on its way to you!"),
    "delivered": ("Order Delivered", "Your order has been delivered. Enjoy your treats!"),
    "cancelled": ("Order Cancelled", "Your order has been cancelled. If you have any questions, please contact us."),
}


def status_message(order: Order, new_status: str) -> tuple[str, str]:
    title, message = STATUS_MESSAGES.get(
        new_status, ("Order Update", f"Your order status has been updated to: {new_status}")
    )
    if new_status == "ready":
        if order.order_type == OrderType.PICKUP.value:
            message = "Your order is ready for pickup!"
        else:
            message = "Your order is ready for delivery!"
    return title, message


def _order_context(order: Order) -> Dict[str, Any]:
    return {
        "order_number": order.order_number,
        "order_type": order.order_type,
        "scheduled_time": order.scheduled_time,
        "delivery_address": order.delivery_address,
        "payment_method": order.payment_method,
        "notes": order.notes,
        "total_amount": order.total_amount,
        "items": [
            {
                "name": item.product_name or f"Product #{item.product_id}",
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "subtotal": item.subtotal,
                "special_instructions": item.special_instructions,
            }
            for item in order.items
        ],
        "track_url": f"{settings.FRONTEND_URL}/track-order/{order.order_number}",
        "bakery_name": settings.BAKERY_NAME,
        "bakery_email": settings.BAKERY_EMAIL,
    }


class OrderNotifier:
    """
    Sends customer and staff emails for committed order events.

    Runs outside the order transaction with its own session. Delivery
    failures are logged and never reach the caller.
    """

    def __init__(self, database: Database, send: Callable[..., None] | None = None):
        self.database = database
        self._send = send

    def send(self, to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
        sender = self._send or email_service.send_templated_email
        sender(to_email, subject, template_path, context)

    def dispatch(self, events: Iterable[object]) -> None:
        for event in events:
            try:
                with self.database.session() as db:
                    self._handle(db, event)
            except Exception:
                logger.exception("Failed to dispatch notification for %r", event)

    def _handle(self, db: Session, event: object) -> None:
        order = db.get(Order, event.order_id)
        if order is None:
            logger.warning("Order %s vanished before notification", event.order_id)
            return
        customer = db.get(Customer, order.customer_id) if order.customer_id else None

        if isinstance(event, OrderPlaced):
            self.order_placed(order, customer)
        elif isinstance(event, StatusChanged):
            self.status_changed(order, customer, event.new_status)
        else:
            logger.warning("No notification handler for %s", type(event).__name__)

    def order_placed(self, order: Order, customer: Customer | None) -> None:
        context = _order_context(order)
        if customer is not None:
            self._guarded(
                self.send,
                customer.email,
                f"Order Confirmation - {order.order_number}",
                "emails/order_confirmation.txt",
                {**context, "first_name": customer.first_name},
            )
        else:
            logger.info("Guest order %s, no confirmation email", order.order_number)

        self._guarded(
            self.send,
            settings.BAKERY_EMAIL,
            f"New Order Received - {order.order_number}",
            "emails/new_order.txt",
            {
                **context,
                "customer_name": f"{customer.first_name} {customer.last_name}" if customer else "Guest",
                "customer_email": customer.email if customer else None,
                "customer_phone": customer.phone if customer else None,
            },
        )

    def status_changed(self, order: Order, customer: Customer | None, new_status: str) -> None:
        if customer is None:
            logger.info("Guest order %s is now %s, nobody to notify", order.order_number, new_status)
            return
        title, message = status_message(order, new_status)
        self._guarded(
            self.send,
            customer.email,
            f"{title} - {order.order_number}",
            "emails/status_update.txt",
            {
                **_order_context(order),
                "first_name": customer.first_name,
                "message": message,
                "status_label": new_status.upper().replace("_", " "),
            },
        )

    @staticmethod
    def _guarded(func: Callable[..., None], to_email: str, subject: str, *args) -> None:
        try:
            func(to_email, subject, *args)
        except Exception:
            logger.exception("Error sending email %r to %s", subject, to_email)
