"""Admin API: product CRUD, orders and payment audit trail. X-Admin-Secret required."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from tgshop.api.deps import get_payment_store, require_admin
from tgshop.core.database import get_db
from tgshop.models import Order, PaymentRecord, PaymentStatusEvent, Product
from tgshop.schemas import ProductIn
from tgshop.services.payment_store import PaymentStore

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/products", response_model=Product, status_code=201)
def create_product(body: ProductIn, db: Session = Depends(get_db)):
    product = Product(**body.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.put("/products/{product_id}", response_model=Product)
def update_product(product_id: int, body: ProductIn, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found.")
    for key, value in body.model_dump().items():
        setattr(product, key, value)
    product.updated_at = datetime.utcnow()
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found.")
    db.delete(product)
    db.commit()
    return {"ok": True}


@router.get("/orders", response_model=list[Order])
def list_orders(status: str | None = None, limit: int = 200, db: Session = Depends(get_db)):
    stmt = select(Order).order_by(Order.created_at.desc()).limit(min(max(limit, 1), 500))
    if status:
        stmt = stmt.where(Order.status == status)
    return list(db.exec(stmt).all())


@router.get("/payments", response_model=list[PaymentRecord])
def list_payments(status: str | None = None, limit: int = 200, db: Session = Depends(get_db)):
    stmt = select(PaymentRecord).order_by(PaymentRecord.id.desc()).limit(min(max(limit, 1), 500))
    if status:
        stmt = stmt.where(PaymentRecord.status == status)
    return list(db.exec(stmt).all())


@router.get("/payments/{payment_record_id}/events", response_model=list[PaymentStatusEvent])
def payment_events(payment_record_id: int, store: PaymentStore = Depends(get_payment_store)):
    if not store.get_payment_record(payment_record_id):
        raise HTTPException(status_code=404, detail="Payment not found.")
    return store.list_status_events(payment_record_id)
