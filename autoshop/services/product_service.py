from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autoshop.core.exceptions import NotFoundError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.base import generate_custom_id
from autoshop.models.branch import Branch
from autoshop.models.product import Currency, Product
from autoshop.schemas.product import ProductCreate, ProductUpdate


def get_product_by_id(db: Session, product_id: str) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id, Product.is_deleted.is_(False)).first()


def get_all_products(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    branch_id: Optional[str] = None,
    currency: Optional[Currency] = None,
    low_stock: bool = False
) -> tuple[List[Product], int]:
    query = db.query(Product).filter(Product.is_deleted.is_(False))

    if branch_id:
        query = query.filter(Product.branch_id == branch_id)
    if currency:
        query = query.filter(Product.currency == currency)
    if low_stock:
        query = query.filter(Product.quantity <= Product.min_quantity)

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Product.name.ilike(search_term),
                Product.description.ilike(search_term),
                Product.id.ilike(search_term)
            )
        )

    total = query.count()
    products = query.order_by(Product.name.asc()).offset(skip).limit(limit).all()
    return products, total


def create_product(db: Session, data: ProductCreate, created_by: Optional[str] = None) -> Product:
    if data.branch_id and not db.query(Branch).filter(Branch.id == data.branch_id, Branch.is_deleted.is_(False)).first():
        raise NotFoundError("Branch", data.branch_id)

    product_id = generate_custom_id("PRD")
    while db.query(Product).filter(Product.id == product_id).first():
        product_id = generate_custom_id("PRD")

    product = Product(id=product_id, created_by=created_by, **data.model_dump())
    db.add(product)
    try:
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} ({product.name}) created with quantity {product.quantity}")
        return product
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating product: {str(e)}")
        raise ValidationError("Failed to create product")


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product_by_id(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return product


def restock_product(db: Session, product_id: str, quantity: int) -> Product:
    """Receive goods; the only quantity change outside of orders."""
    if quantity <= 0:
        raise ValidationError("Restock quantity must be positive")
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.is_deleted.is_(False))
        .with_for_update()
        .first()
    )
    if not product:
        raise NotFoundError("Product", product_id)

    product.quantity += quantity
    db.commit()
    db.refresh(product)
    logger.info(f"Product {product_id} restocked by {quantity}, now {product.quantity}")
    return product


def delete_product(db: Session, product_id: str) -> Product:
    product = get_product_by_id(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    product.mark_deleted()
    product.is_available = False
    db.commit()
    logger.info(f"Product {product_id} deleted")
    return product
