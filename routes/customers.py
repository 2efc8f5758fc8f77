from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, func
from sqlalchemy.orm import Session
from typing import List, Optional

from core.db import get_db
from models.customer import Customer
from models.order import Order, OrderStatus
from models.user import User
from routes.auth import require_staff
from routes.orders import summarize, summary_query
from schemas.customer import CustomerCreate, CustomerUpdate, CustomerOut, CustomerStats
from schemas.order import OrderSummary

router = APIRouter(prefix="/customers", tags=["customers"])


def _get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/", response_model=CustomerOut, status_code=201)
def create_customer(data: CustomerCreate, db: Session = Depends(get_db)):
    existing = db.query(Customer).filter(Customer.email == data.email.lower()).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Customer with this email already exists")
    customer = Customer(
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        email=data.email.lower(),
        phone=data.phone,
        address=data.address,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/", response_model=List[CustomerOut])
def list_customers(
    search: Optional[str] = None,
    active: Optional[bool] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_staff),
):
    qs = db.query(Customer)
    if search:
        pattern = f"%{search.lower()}%"
        qs = qs.filter(
            Customer.email.ilike(pattern)
            | Customer.first_name.ilike(pattern)
            | Customer.last_name.ilike(pattern)
        )
    if active is not None:
        qs = qs.filter(Customer.is_active.is_(active))
    qs = qs.order_by(Customer.created_at.desc(), Customer.id.desc())
    if limit:
        qs = qs.limit(limit)
    if offset:
        qs = qs.offset(offset)
    return qs.all()


@router.get("/email/{email}", response_model=CustomerOut)
def get_customer_by_email(email: str, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    customer = db.query(Customer).filter(Customer.email == email.lower()).one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return _get_customer(db, customer_id)


@router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: int, data: CustomerUpdate, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    customer = _get_customer(db, customer_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("email"):
        changes["email"] = changes["email"].lower()
        clash = db.query(Customer).filter(Customer.email == changes["email"], Customer.id != customer.id).first()
        if clash:
            raise HTTPException(status_code=400, detail="Customer with this email already exists")
    for field, value in changes.items():
        setattr(customer, field, value)
    db.commit()
    db.refresh(customer)
    return customer


@router.delete("/{customer_id}", response_model=CustomerOut)
def deactivate_customer(customer_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    customer = _get_customer(db, customer_id)
    customer.is_active = False
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}/orders", response_model=List[OrderSummary])
def get_customer_orders(
    customer_id: int,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_staff),
):
    customer = _get_customer(db, customer_id)
    query = summary_query(db).filter(Order.customer_id == customer.id).order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    return summarize(query.all())


@router.get("/{customer_id}/stats", response_model=CustomerStats)
def get_customer_stats(customer_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    customer = _get_customer(db, customer_id)
    total, spent, average, completed, last_order = (
        db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.coalesce(func.avg(Order.total_amount), 0),
            func.count(case((Order.status == OrderStatus.DELIVERED.value, 1))),
            func.max(Order.created_at),
        )
        .filter(Order.customer_id == customer.id)
        .one()
    )
    return CustomerStats(
        total_orders=total,
        total_spent=Decimal(str(spent)).quantize(Decimal("0.01")),
        average_order_value=Decimal(str(average)).quantize(Decimal("0.01")),
        completed_orders=completed,
        last_order_date=last_order,
    )
