import math
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db, get_notifier
from autoshop.logger_config import logger
from autoshop.models.money import Money
from autoshop.models.order import PaymentType
from autoshop.models.transaction import Transaction, TransactionType
from autoshop.schemas.transaction import (
    BalanceResponse,
    CashMovementCreate,
    CashMovementResponse,
    ClientTransactionBalanceResponse,
    TransactionDeleteResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionStatisticsResponse,
)
from autoshop.services.notifications import NotificationSink, cash_movement_message
from autoshop.services.transaction_recorder import TransactionRecorder

router = APIRouter()


def build_transaction_response(transaction: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        type=transaction.type,
        amount=transaction.amount.as_dict(),
        payment_type=transaction.payment_type,
        description=transaction.description or "",
        related_model=transaction.related_model,
        related_id=transaction.related_id,
        client_id=transaction.client_id,
        branch_id=transaction.branch_id,
        created_by=transaction.created_by,
        is_deleted=transaction.is_deleted,
        created_at=transaction.created_at,
    )


def _cash_movement(
    transaction_type: TransactionType,
    data: CashMovementCreate,
    background_tasks: BackgroundTasks,
    principal: Principal,
    db: Session,
    notifier: NotificationSink,
) -> CashMovementResponse:
    amount = Money.of(data.amount)
    transaction, balance = TransactionRecorder(db).cash_movement(
        transaction_type,
        amount,
        data.payment_type,
        description=data.description,
        created_by=principal.id,
    )
    background_tasks.add_task(
        notifier.send_message,
        cash_movement_message(transaction_type.value, amount, balance.amount, data.description),
    )
    logger.info(f"API: {transaction_type.value} {amount.describe()} by {principal.id}")
    return CashMovementResponse(
        message=f"{transaction_type.value} recorded",
        transaction=build_transaction_response(transaction),
        balance=balance.amount.as_dict(),
    )


@router.post("/cash-in", response_model=CashMovementResponse, status_code=status.HTTP_201_CREATED)
def cash_in(
    data: CashMovementCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    return _cash_movement(TransactionType.cash_in, data, background_tasks, principal, db, notifier)


@router.post("/cash-out", response_model=CashMovementResponse, status_code=status.HTTP_201_CREATED)
def cash_out(
    data: CashMovementCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Withdraw cash. Fails when the balance does not cover the amount."""
    return _cash_movement(TransactionType.cash_out, data, background_tasks, principal, db, notifier)


@router.get("", response_model=TransactionListResponse)
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[TransactionType] = Query(None),
    payment_type: Optional[PaymentType] = Query(None),
    client_id: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    transactions, total = TransactionRecorder(db).list_transactions(
        page=page,
        limit=limit,
        transaction_type=type,
        payment_type=payment_type,
        client_id=client_id,
        branch_id=branch_id,
        start_date=start_date,
        end_date=end_date,
    )
    return TransactionListResponse(
        current_page=page,
        total_pages=math.ceil(total / limit) if total else 0,
        total_items=total,
        transactions=[build_transaction_response(t) for t in transactions],
    )


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    recorder = TransactionRecorder(db)
    balance = recorder.get_balance()
    db.commit()
    return BalanceResponse(amount=balance.amount.as_dict(), updated_at=balance.updated_at)


@router.get("/statistics", response_model=TransactionStatisticsResponse)
def get_statistics(
    start_date: date = Query(...),
    end_date: date = Query(...),
    branch_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Sums grouped by type, by day and by payment type."""
    stats = TransactionRecorder(db).get_statistics(start_date, end_date, branch_id=branch_id)
    return TransactionStatisticsResponse(start_date=start_date, end_date=end_date, branch_id=branch_id, **stats)


@router.get("/client/{client_id}/balance", response_model=ClientTransactionBalanceResponse)
def get_client_balance(
    client_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return ClientTransactionBalanceResponse(**TransactionRecorder(db).client_balance(client_id))


@router.delete("/{transaction_id}", response_model=TransactionDeleteResponse)
def delete_transaction(
    transaction_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Soft delete; its amount is taken back out of the balance."""
    balance = TransactionRecorder(db).delete_transaction(transaction_id)
    logger.info(f"API: Transaction {transaction_id} deleted by {principal.id}")
    return TransactionDeleteResponse(message=f"Transaction {transaction_id} deleted", balance=balance.amount.as_dict())
