from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db
from autoshop.core.exceptions import NotFoundError
from autoshop.logger_config import logger
from autoshop.schemas.branch import BranchCreate, BranchListResponse, BranchResponse
from autoshop.services.branch_service import create_branch, delete_branch, get_all_branches, get_branch_by_id

router = APIRouter()


@router.get("", response_model=BranchListResponse)
def get_branches(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    search: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    branches, total = get_all_branches(db, skip=skip, limit=limit, search=search)
    return BranchListResponse(total=total, branches=[BranchResponse.model_validate(b) for b in branches])


@router.get("/{branch_id}", response_model=BranchResponse)
def get_branch(
    branch_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    branch = get_branch_by_id(db, branch_id)
    if not branch:
        raise NotFoundError("Branch", branch_id)
    return BranchResponse.model_validate(branch)


@router.post("", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
def create_branch_route(
    branch_data: BranchCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    branch = create_branch(db, name=branch_data.name, address=branch_data.address, phone=branch_data.phone)
    logger.info(f"API: Branch {branch.id} created by {principal.id}")
    return BranchResponse.model_validate(branch)


@router.delete("/{branch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_branch_route(
    branch_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    delete_branch(db, branch_id)
    logger.info(f"API: Branch {branch_id} deleted by {principal.id}")
