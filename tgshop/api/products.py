from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from tgshop.core.database import get_db
from tgshop.models import Product

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=list[Product])
@router.get("/", response_model=list[Product], include_in_schema=False)
def list_products(category: str | None = None, in_stock: bool | None = None, db: Session = Depends(get_db)):
    stmt = select(Product).order_by(Product.id.desc())
    if category:
        stmt = stmt.where(Product.category == category)
    if in_stock is not None:
        stmt = stmt.where(Product.in_stock == in_stock)
    return list(db.exec(stmt).all())


@router.get("/{product_id}", response_model=Product)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found.")
    return product
