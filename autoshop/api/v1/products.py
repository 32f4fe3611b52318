from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db
from autoshop.core.exceptions import NotFoundError
from autoshop.logger_config import logger
from autoshop.models.product import Currency
from autoshop.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductRestock,
    ProductUpdate,
)
from autoshop.services.product_service import (
    create_product,
    delete_product,
    get_all_products,
    get_product_by_id,
    restock_product,
    update_product,
)

router = APIRouter()


@router.get("", response_model=ProductListResponse)
def get_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    search: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    currency: Optional[Currency] = Query(None),
    low_stock: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Get products. ``low_stock`` keeps only those at or below min_quantity.
    """
    products, total = get_all_products(
        db, skip=skip, limit=limit, search=search, branch_id=branch_id, currency=currency, low_stock=low_stock
    )
    return ProductListResponse(total=total, products=[ProductResponse.model_validate(p) for p in products])


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    product = get_product_by_id(db, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    return ProductResponse.model_validate(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product_route(
    product_data: ProductCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    product = create_product(db, product_data, created_by=principal.id)
    logger.info(f"API: Product {product.id} created by {principal.id}")
    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product_route(
    product_id: str,
    product_data: ProductUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    product = update_product(db, product_id, product_data)
    logger.info(f"API: Product {product_id} updated by {principal.id}")
    return ProductResponse.model_validate(product)


@router.post("/{product_id}/restock", response_model=ProductResponse)
def restock_product_route(
    product_id: str,
    restock_data: ProductRestock,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    product = restock_product(db, product_id, restock_data.quantity)
    logger.info(f"API: Product {product_id} restocked by {principal.id}")
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product_route(
    product_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    delete_product(db, product_id)
    logger.info(f"API: Product {product_id} deleted by {principal.id}")
