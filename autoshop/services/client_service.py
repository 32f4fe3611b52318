from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autoshop.core.exceptions import NotFoundError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.base import generate_custom_id
from autoshop.models.branch import Branch
from autoshop.models.client import Client
from autoshop.models.money import Money
from autoshop.schemas.client import ClientCreate, ClientUpdate


def get_client_by_id(db: Session, client_id: str) -> Optional[Client]:
    return db.query(Client).filter(Client.id == client_id, Client.is_deleted.is_(False)).first()


def get_all_clients(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    branch_id: Optional[str] = None,
    is_vip: Optional[bool] = None,
    has_debt: Optional[bool] = None
) -> tuple[List[Client], int]:
    """Get all clients with optional search filtering."""
    query = db.query(Client).filter(Client.is_deleted.is_(False))

    if branch_id:
        query = query.filter(Client.branch_id == branch_id)
    if is_vip is not None:
        query = query.filter(Client.is_vip.is_(is_vip))
    if has_debt:
        query = query.filter(or_(Client.debt_usd > 0, Client.debt_uzs > 0))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Client.first_name.ilike(search_term),
                Client.last_name.ilike(search_term),
                Client.phone.ilike(search_term),
                Client.id.ilike(search_term)
            )
        )

    total = query.count()
    clients = query.order_by(Client.created_at.desc()).offset(skip).limit(limit).all()
    return clients, total


def _check_branch(db: Session, branch_id: Optional[str]) -> None:
    if branch_id and not db.query(Branch).filter(Branch.id == branch_id, Branch.is_deleted.is_(False)).first():
        raise NotFoundError("Branch", branch_id)


def create_client(db: Session, data: ClientCreate) -> Client:
    """Create a new client with zero debt."""
    _check_branch(db, data.branch_id)

    client_id = generate_custom_id("CLI")
    while db.query(Client).filter(Client.id == client_id).first():
        client_id = generate_custom_id("CLI")

    client = Client(id=client_id, debt=Money.zero(), **data.model_dump())
    db.add(client)
    try:
        db.commit()
        db.refresh(client)
        logger.info(f"Client {client.id} ({client.full_name}) created")
        return client
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating client: {str(e)}")
        raise ValidationError("Failed to create client")


def update_client(db: Session, client_id: str, data: ClientUpdate) -> Client:
    """Profile fields only; debt is owned by the debt reconciler."""
    client = get_client_by_id(db, client_id)
    if not client:
        raise NotFoundError("Client", client_id)

    changes = data.model_dump(exclude_unset=True)
    if "branch_id" in changes:
        _check_branch(db, changes["branch_id"])
    for field, value in changes.items():
        setattr(client, field, value)

    try:
        db.commit()
        db.refresh(client)
        return client
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error updating client: {str(e)}")
        raise ValidationError("Failed to update client")


def delete_client(db: Session, client_id: str) -> Client:
    client = get_client_by_id(db, client_id)
    if not client:
        raise NotFoundError("Client", client_id)
    if not client.debt.is_zero():
        raise ValidationError(f"Client {client_id} still owes {client.debt.describe()}")
    client.mark_deleted()
    db.commit()
    logger.info(f"Client {client_id} deleted")
    return client
