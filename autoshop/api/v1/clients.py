from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db
from autoshop.core.exceptions import NotFoundError
from autoshop.logger_config import logger
from autoshop.models.client import Client
from autoshop.schemas.client import ClientCreate, ClientListResponse, ClientResponse, ClientUpdate
from autoshop.services.client_service import (
    create_client,
    delete_client,
    get_all_clients,
    get_client_by_id,
    update_client,
)

router = APIRouter()


def build_client_response(client: Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        first_name=client.first_name,
        last_name=client.last_name,
        phone=client.phone,
        birthday=client.birthday,
        telegram=client.telegram,
        is_vip=client.is_vip,
        branch_id=client.branch_id,
        notes=client.notes or "",
        debt=client.debt.as_dict(),
        created_at=client.created_at,
        updated_at=client.updated_at,
    )


@router.get("", response_model=ClientListResponse)
def get_clients(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    search: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    is_vip: Optional[bool] = Query(None),
    has_debt: Optional[bool] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Get all clients with optional search filtering.
    Requires authentication.
    """
    clients, total = get_all_clients(
        db, skip=skip, limit=limit, search=search, branch_id=branch_id, is_vip=is_vip, has_debt=has_debt
    )
    return ClientListResponse(total=total, clients=[build_client_response(c) for c in clients])


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    client = get_client_by_id(db, client_id)
    if not client:
        raise NotFoundError("Client", client_id)
    return build_client_response(client)


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client_route(
    client_data: ClientCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    client = create_client(db, client_data)
    logger.info(f"API: Client {client.id} created by {principal.id}")
    return build_client_response(client)


@router.patch("/{client_id}", response_model=ClientResponse)
def update_client_route(
    client_id: str,
    client_data: ClientUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Update profile fields. Debt is not editable here."""
    client = update_client(db, client_id, client_data)
    logger.info(f"API: Client {client_id} updated by {principal.id}")
    return build_client_response(client)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client_route(
    client_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    delete_client(db, client_id)
    logger.info(f"API: Client {client_id} deleted by {principal.id}")
