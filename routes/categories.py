from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from core.db import get_db
from models.category import Category
from models.product import Product
from models.user import User
from routes.auth import require_staff
from schemas.category import CategoryCreate, CategoryUpdate, CategoryOut
from schemas.product import ProductOut

router = APIRouter(prefix="/categories", tags=["categories"])


def _get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _name_taken(db: Session, name: str, exclude_id: int | None = None) -> bool:
    qs = db.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        qs = qs.filter(Category.id != exclude_id)
    return qs.first() is not None


@router.get("/", response_model=List[CategoryOut])
def list_categories(include_inactive: bool = False, db: Session = Depends(get_db)):
    qs = db.query(Category)
    if not include_inactive:
        qs = qs.filter(Category.is_active.is_(True))
    return qs.order_by(Category.display_order, Category.name).all()


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return _get_category(db, category_id)


@router.get("/{category_id}/products", response_model=List[ProductOut])
def get_category_products(category_id: int, db: Session = Depends(get_db)):
    category = _get_category(db, category_id)
    return (
        db.query(Product)
        .filter(Product.category_id == category.id, Product.is_available.is_(True))
        .order_by(Product.name)
        .all()
    )


@router.post("/", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryCreate, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    name = data.name.strip()
    if _name_taken(db, name):
        raise HTTPException(status_code=400, detail="Category name already exists")
    category = Category(name=name, description=data.description, display_order=data.display_order)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@router.patch("/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryUpdate, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    category = _get_category(db, category_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if _name_taken(db, changes["name"], exclude_id=category.id):
            raise HTTPException(status_code=400, detail="Category name already exists")
    for field, value in changes.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


@router.delete("/{category_id}", response_model=CategoryOut)
def delete_category(category_id: int, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    """Soft delete: the category is hidden but products keep their reference."""
    category = _get_category(db, category_id)
    category.is_active = False
    db.commit()
    db.refresh(category)
    return category
