from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autoshop.core.exceptions import NotFoundError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.base import generate_custom_id
from autoshop.models.branch import Branch


def get_branch_by_id(db: Session, branch_id: str) -> Optional[Branch]:
    return db.query(Branch).filter(Branch.id == branch_id, Branch.is_deleted.is_(False)).first()


def get_all_branches(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None
) -> tuple[List[Branch], int]:
    query = db.query(Branch).filter(Branch.is_deleted.is_(False))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Branch.name.ilike(search_term),
                Branch.address.ilike(search_term),
                Branch.id.ilike(search_term)
            )
        )

    total = query.count()
    branches = query.order_by(Branch.created_at.asc()).offset(skip).limit(limit).all()
    return branches, total


def create_branch(db: Session, name: str, address: Optional[str] = None, phone: Optional[str] = None) -> Branch:
    branch_id = generate_custom_id("BR")
    while db.query(Branch).filter(Branch.id == branch_id).first():
        branch_id = generate_custom_id("BR")

    branch = Branch(id=branch_id, name=name, address=address, phone=phone)
    db.add(branch)
    try:
        db.commit()
        db.refresh(branch)
        logger.info(f"Branch {branch.id} ({name}) created")
        return branch
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating branch: {str(e)}")
        raise ValidationError("Failed to create branch")


def delete_branch(db: Session, branch_id: str) -> Branch:
    branch = get_branch_by_id(db, branch_id)
    if not branch:
        raise NotFoundError("Branch", branch_id)
    branch.mark_deleted()
    db.commit()
    logger.info(f"Branch {branch_id} deleted")
    return branch
