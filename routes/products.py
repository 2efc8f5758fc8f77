from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from core.db import get_db
from models.category import Category
from models.order_item import OrderItem
from models.product import Product
from models.user import User
from routes.auth import require_staff
from schemas.product import ProductCreate, ProductUpdate, ProductOut

router = APIRouter(prefix="/products", tags=["products"])


def _check_category(db: Session, category_id: int) -> None:
    category = db.query(Category).filter(Category.id == category_id, Category.is_active.is_(True)).one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")


@router.get("/", response_model=List[ProductOut])
def list_products(
    category_id: Optional[int] = None,
    available: Optional[bool] = None,
    featured: Optional[bool] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    qs = db.query(Product)
    if category_id is not None:
        qs = qs.filter(Product.category_id == category_id)
    if available is not None:
        qs = qs.filter(Product.is_available.is_(available))
    if featured is not None:
        qs = qs.filter(Product.is_featured.is_(featured))
    qs = qs.order_by(Product.created_at.desc(), Product.id.desc())
    if limit:
        qs = qs.limit(limit)
    if offset:
        qs = qs.offset(offset)
    return qs.all()


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    if data.category_id:
        _check_category(db, data.category_id)

    product = Product(**data.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: int, data: ProductUpdate, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("category_id"):
        _check_category(db, changes["category_id"])

    for field, value in changes.items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return product


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    # Ordered products stay for order history; take them off the menu instead
    if db.query(OrderItem.id).filter(OrderItem.product_id == product_id).first():
        raise HTTPException(status_code=409, detail="Product has orders; mark it unavailable instead")
    db.delete(product)
    db.commit()
    return None
