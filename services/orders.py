import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from models.customer import Customer
from models.order import Order, OrderStatus, OrderType, TERMINAL_STATUSES
from models.order_item import OrderItem
from models.product import Product
from schemas.order import OrderCreate
from services.errors import (
    ConcurrentUpdateError,
    InsufficientStockError,
    NotFoundError,
    OrderError,
    StateError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_NEXT_STATUS = {
    OrderStatus.PENDING.value: OrderStatus.CONFIRMED.value,
    OrderStatus.CONFIRMED.value: OrderStatus.PREPARING.value,
    OrderStatus.PREPARING.value: OrderStatus.READY.value,
    OrderStatus.OUT_FOR_DELIVERY.value: OrderStatus.DELIVERED.value,
}


@dataclass(frozen=True)
class OrderPlaced:
    order_id: int
    order_number: str
    customer_id: Optional[int]


@dataclass(frozen=True)
class StatusChanged:
    order_id: int
    order_number: str
    customer_id: Optional[int]
    previous_status: str
    new_status: str


@dataclass
class OrderOutcome:
    """Committed order plus the events to dispatch once the transaction is over."""

    order: Order
    events: List[object] = field(default_factory=list)


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def generate_order_number() -> str:
    """BK + last 6 digits of the millisecond clock + 3 random digits."""
    timestamp = str(int(time.time() * 1000))[-6:]
    return f"BK{timestamp}{random.randint(0, 999):03d}"


def next_status(current: str, order_type: str) -> Optional[str]:
    if current == OrderStatus.READY.value:
        if order_type == OrderType.DELIVERY.value:
            return OrderStatus.OUT_FOR_DELIVERY.value
        return OrderStatus.DELIVERED.value
    return _NEXT_STATUS.get(current)


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


class OrderWriter:
    """Validates a cart and persists it as an order in a single transaction."""

    def __init__(self, db: Session, allow_oversell: bool | None = None, order_number_attempts: int | None = None):
        self.db = db
        self.allow_oversell = settings.ALLOW_OVERSELL if allow_oversell is None else allow_oversell
        self.order_number_attempts = order_number_attempts or settings.ORDER_NUMBER_ATTEMPTS

    def place_order(self, data: OrderCreate) -> OrderOutcome:
        self._validate(data)
        try:
            order = self._write(data)
            self.db.commit()
        except OrderError as exc:
            self.db.rollback()
            logger.info("Order rejected, transaction rolled back: %s", exc.message)
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Order transaction failed")
            raise StorageError(f"Transaction failed: {exc}") from exc
        except Exception as exc:
            # Driver errors SQLAlchemy does not wrap, e.g. integer overflow in sqlite3
            self.db.rollback()
            logger.exception("Order transaction failed")
            raise StorageError(f"Transaction failed: {exc}") from exc

        self.db.refresh(order)
        logger.info(
            "Order %s placed: %d item(s), total %s",
            order.order_number, len(order.items), order.total_amount,
        )
        return OrderOutcome(
            order=order,
            events=[OrderPlaced(order.id, order.order_number, order.customer_id)],
        )

    @staticmethod
    def _validate(data: OrderCreate) -> None:
        if not data.items:
            raise ValidationError("Order must contain at least one item")
        order_type = _value(data.order_type) or OrderType.PICKUP.value
        if order_type not in (OrderType.PICKUP.value, OrderType.DELIVERY.value):
            raise ValidationError(f"Invalid order type: {order_type}")
        if order_type == OrderType.DELIVERY.value and not (data.delivery_address or "").strip():
            raise ValidationError("Delivery address is required for delivery orders")
        for item in data.items:
            if item.quantity < 1:
                raise ValidationError("Item quantity must be at least 1")

    def _write(self, data: OrderCreate) -> Order:
        if data.customer_id is not None and self.db.get(Customer, data.customer_id) is None:
            raise NotFoundError(f"Customer with ID {data.customer_id} not found")

        total_amount = Decimal("0.00")
        items: list[OrderItem] = []
        for line in data.items:
            product = self.db.get(Product, line.product_id, populate_existing=True)
            if product is None:
                raise NotFoundError(f"Product with ID {line.product_id} not found")

            unit_price = _to_decimal(product.price).quantize(CENT)
            subtotal = (unit_price * line.quantity).quantize(CENT)
            total_amount += subtotal
            items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    subtotal=subtotal,
                    special_instructions=line.special_instructions,
                )
            )
            self._decrement_stock(product, line.quantity)

        order = Order(
            order_number=self._allocate_order_number(),
            customer_id=data.customer_id,
            total_amount=total_amount,
            status=OrderStatus.PENDING.value,
            order_type=_value(data.order_type) or OrderType.PICKUP.value,
            scheduled_time=data.scheduled_time,
            delivery_address=data.delivery_address,
            payment_method=data.payment_method,
            notes=data.notes,
        )
        order.items = items
        self.db.add(order)
        self.db.flush()
        return order

    def _decrement_stock(self, product: Product, quantity: int) -> None:
        # Relative update so concurrent orders for the same product cannot lose writes
        if self.allow_oversell:
            stmt = (
                update(Product)
                .where(Product.id == product.id)
                .values(
                    stock_quantity=case(
                        (Product.stock_quantity > quantity, Product.stock_quantity - quantity),
                        else_=0,
                    )
                )
            )
        else:
            stmt = (
                update(Product)
                .where(Product.id == product.id, Product.stock_quantity >= quantity)
                .values(stock_quantity=Product.stock_quantity - quantity)
            )
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.expire(product, ["stock_quantity"])
        if result.rowcount == 0:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. "
                f"Available: {product.stock_quantity}, Requested: {quantity}"
            )

    def _allocate_order_number(self) -> str:
        for _ in range(self.order_number_attempts):
            candidate = generate_order_number()
            taken = self.db.execute(
                select(Order.id).where(Order.order_number == candidate)
            ).first()
            if taken is None:
                return candidate
            logger.warning("Order number %s already used, generating another", candidate)
        raise StorageError("Could not allocate a unique order number")


class OrderStatusMachine:
    """
    Drives an order through its fulfillment states.

    Every status write is conditional on the status the request read, so a
    concurrent transition makes the later one fail instead of overwriting.
    """

    def __init__(self, db: Session):
        self.db = db

    def advance(self, order_id: int) -> OrderOutcome:
        order = self._load(order_id)
        target = next_status(order.status, order.order_type)
        if target is None:
            raise StateError("No valid next status")
        return self._transition(order, target)

    def cancel(self, order_id: int) -> OrderOutcome:
        order = self._load(order_id)
        if order.status in TERMINAL_STATUSES:
            raise StateError("Cannot cancel order with current status")

        def restore_stock():
            for item in order.items:
                self.db.execute(
                    update(Product)
                    .where(Product.id == item.product_id)
                    .values(stock_quantity=Product.stock_quantity + item.quantity)
                    .execution_options(synchronize_session=False)
                )

        outcome = self._transition(order, OrderStatus.CANCELLED.value, before=restore_stock)
        logger.info("Order %s cancelled, stock restored for %d item(s)", order.order_number, len(order.items))
        return outcome

    def set_status(self, order_id: int, status: str) -> OrderOutcome:
        """Administrative override that writes any known status directly."""
        try:
            target = OrderStatus(_value(status)).value
        except ValueError:
            raise ValidationError("Invalid status")
        order = self._load(order_id)
        return self._transition(order, target)

    def _load(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _transition(self, order: Order, target: str, before=None) -> OrderOutcome:
        previous = order.status
        try:
            if before is not None:
                before()
            result = self.db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == previous)
                .values(status=target, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConcurrentUpdateError("Order status was changed by another request")
            self.db.commit()
        except OrderError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Status update failed for order %s", order.order_number)
            raise StorageError(f"Transaction failed: {exc}") from exc
        except Exception as exc:
            self.db.rollback()
            logger.exception("Status update failed for order %s", order.order_number)
            raise StorageError(f"Transaction failed: {exc}") from exc

        # Products touched by relative updates are stale in the identity map
        self.db.expire_all()
        self.db.refresh(order)
        logger.info("Order %s moved from %s to %s", order.order_number, previous, target)
        return OrderOutcome(
            order=order,
            events=[StatusChanged(order.id, order.order_number, order.customer_id, previous, target)],
        )
