from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, Request
from sqlalchemy import case, func
from sqlalchemy.orm import Session, selectinload

from core.db import get_db
from models.order import Order, OrderStatus
from models.order_item import OrderItem
from models.user import User
from routes.auth import require_staff
from schemas.order import OrderCreate, OrderOut, OrderStats, OrderStatusUpdate, OrderSummary
from services.errors import OrderError
from services.notifier import OrderNotifier
from services.orders import OrderOutcome, OrderStatusMachine, OrderWriter

router = APIRouter(prefix="/orders", tags=["orders"])


def get_notifier(request: Request) -> OrderNotifier:
    return OrderNotifier(request.app.state.database)


def _raise_http(exc: OrderError):
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def _finish(outcome: OrderOutcome, notifier: OrderNotifier, background_tasks: BackgroundTasks) -> Order:
    # Runs after the response is sent, so email problems never affect the request
    background_tasks.add_task(notifier.dispatch, outcome.events)
    return outcome.order


def _order_with_items(db: Session):
    return db.query(Order).options(selectinload(Order.items).selectinload(OrderItem.product))


def summary_query(db: Session):
    item_count = func.count(OrderItem.id).label("item_count")
    return (
        db.query(Order, item_count)
        .outerjoin(OrderItem, OrderItem.order_id == Order.id)
        .group_by(Order.id)
    )


def summarize(rows) -> List[OrderSummary]:
    return [
        OrderSummary(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            total_amount=order.total_amount,
            status=order.status,
            order_type=order.order_type,
            created_at=order.created_at,
            item_count=count,
        )
        for order, count in rows
    ]


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    data: OrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: OrderNotifier = Depends(get_notifier),
):
    try:
        outcome = OrderWriter(db).place_order(data)
    except OrderError as exc:
        _raise_http(exc)
    return _finish(outcome, notifier, background_tasks)


@router.get("/track/{order_number}", response_model=OrderOut)
def track_order(order_number: str, db: Session = Depends(get_db)):
    order = _order_with_items(db).filter(Order.order_number == order_number.upper()).one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/", response_model=List[OrderSummary])
def list_orders(
    status: Optional[OrderStatus] = None,
    customer_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_staff),
):
    query = summary_query(db)
    if status:
        query = query.filter(Order.status == status.value)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    if date_to:
        query = query.filter(Order.created_at <= date_to)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    return summarize(query.all())


@router.get("/stats", response_model=OrderStats)
def order_stats(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_staff),
):
    query = db.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount), 0),
        func.coalesce(func.avg(Order.total_amount), 0),
        func.count(case((Order.status == OrderStatus.DELIVERED.value, 1))),
        func.count(case((Order.status == OrderStatus.CANCELLED.value, 1))),
    )
    if date_from and date_to:
        query = query.filter(Order.created_at.between(date_from, date_to))
    total, revenue, average, completed, cancelled = query.one()
    return OrderStats(
        total_orders=total,
        total_revenue=Decimal(str(revenue)).quantize(Decimal("0.01")),
        average_order_value=Decimal(str(average)).quantize(Decimal("0.01")),
        completed_orders=completed,
        cancelled_orders=cancelled,
    )


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    order = _order_with_items(db).filter(Order.id == order_id).one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[OrderStatusUpdate] = Body(default=None),
    db: Session = Depends(get_db),
    notifier: OrderNotifier = Depends(get_notifier),
    _: User = Depends(require_staff),
):
    """Advance to the next status, or set an explicit one when the body names it."""
    machine = OrderStatusMachine(db)
    try:
        if data is None or data.status is None:
            outcome = machine.advance(order_id)
        else:
            outcome = machine.set_status(order_id, data.status)
    except OrderError as exc:
        _raise_http(exc)
    return _finish(outcome, notifier, background_tasks)


@router.patch("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: OrderNotifier = Depends(get_notifier),
    _: User = Depends(require_staff),
):
    try:
        outcome = OrderStatusMachine(db).cancel(order_id)
    except OrderError as exc:
        _raise_http(exc)
    return _finish(outcome, notifier, background_tasks)
