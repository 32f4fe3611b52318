from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db, get_notifier
from autoshop.logger_config import logger
from autoshop.models.debtor import Debtor, DebtorStatus
from autoshop.models.money import Money
from autoshop.schemas.debtor import (
    DebtorClientRef,
    DebtorCreate,
    DebtorDeleteResponse,
    DebtorListResponse,
    DebtorPaymentCreate,
    DebtorPaymentListResponse,
    DebtorPaymentResponse,
    DebtorResponse,
    DebtorStatsResponse,
    DebtorUpdate,
    OverdueMarkResponse,
)
from autoshop.services.debt_reconciler import DebtReconciler
from autoshop.services.notifications import NotificationSink, debt_paid_sms, debt_payment_message

router = APIRouter()


def build_debtor_response(debtor: Debtor) -> DebtorResponse:
    return DebtorResponse(
        id=debtor.id,
        client_id=debtor.client_id,
        branch_id=debtor.branch_id,
        order_id=debtor.order_id,
        total_debt=debtor.total_debt.as_dict(),
        paid_amount=debtor.paid_amount.as_dict(),
        remaining_debt=debtor.remaining_debt.as_dict(),
        last_payment=debtor.last_payment.as_dict(),
        last_payment_date=debtor.last_payment_date,
        next_payment=debtor.next_payment.as_dict(),
        next_payment_due_date=debtor.next_payment_due_date,
        due_date=debtor.due_date,
        description=debtor.description or "",
        status=debtor.status,
        created_at=debtor.created_at,
        updated_at=debtor.updated_at,
        client=DebtorClientRef.model_validate(debtor.client) if debtor.client else None,
    )


def build_payment_response(payment) -> DebtorPaymentResponse:
    return DebtorPaymentResponse(
        id=payment.id,
        debtor_id=payment.debtor_id,
        amount=payment.amount.as_dict(),
        payment_type=payment.payment_type,
        description=payment.description or "",
        paid_at=payment.paid_at,
        created_by=payment.created_by,
    )


@router.get("", response_model=DebtorListResponse)
def get_debtors(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    client_id: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    status: Optional[DebtorStatus] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """
    Get debtors with optional filters.
    ``search`` matches client name, phone and description.
    """
    debtors, total = DebtReconciler(db).list_debtors(
        skip=skip,
        limit=limit,
        client_id=client_id,
        branch_id=branch_id,
        status=status,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    return DebtorListResponse(total=total, debtors=[build_debtor_response(d) for d in debtors])


@router.post("", response_model=DebtorResponse, status_code=status.HTTP_201_CREATED)
def create_debtor(
    debtor_data: DebtorCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """
    Direct debt entry. Merges into the client's open debtor at the branch
    or opens a new one.
    """
    debtor = DebtReconciler(db).create_direct_debt(
        client_id=debtor_data.client_id,
        branch_id=debtor_data.branch_id,
        amount=Money.of(debtor_data.amount),
        due_date=debtor_data.date_returned,
        description=debtor_data.description,
        created_by=principal.id,
    )
    logger.info(f"API: Debt booked on debtor {debtor.id} by {principal.id}")
    return build_debtor_response(debtor)


@router.get("/stats/summary", response_model=DebtorStatsResponse)
def get_debtor_stats(
    branch_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return DebtorStatsResponse(**DebtReconciler(db).get_stats(branch_id=branch_id))


@router.post("/mark-overdue", response_model=OverdueMarkResponse)
def mark_overdue_debtors(
    as_of: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Flag open debtors past their due date. Normally run by the daily job."""
    as_of = as_of or date.today()
    marked = DebtReconciler(db).mark_overdue(as_of)
    return OverdueMarkResponse(marked=marked, as_of=as_of)


@router.get("/{debtor_id}", response_model=DebtorResponse)
def get_debtor(
    debtor_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return build_debtor_response(DebtReconciler(db).get_debtor(debtor_id))


@router.patch("/{debtor_id}", response_model=DebtorResponse)
def update_debtor(
    debtor_id: str,
    debtor_data: DebtorUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    next_payment = debtor_data.next_payment
    debtor = DebtReconciler(db).update_debtor(
        debtor_id,
        next_payment=Money.of(next_payment.amount) if next_payment else None,
        next_payment_due_date=next_payment.due_date if next_payment else None,
        description=debtor_data.description,
        due_date=debtor_data.date_returned,
    )
    logger.info(f"API: Debtor {debtor_id} updated by {principal.id}")
    return build_debtor_response(debtor)


@router.post("/{debtor_id}/payments", response_model=DebtorResponse)
def pay_debtor(
    debtor_id: str,
    payment_data: DebtorPaymentCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
):
    """
    Apply a payment. Paying more than the remaining debt in either
    currency is rejected.
    """
    next_payment = payment_data.next_payment
    payment = Money.of(payment_data.payment)
    debtor, _, became_paid = DebtReconciler(db).pay(
        debtor_id,
        payment,
        payment_data.payment_type,
        next_payment=Money.of(next_payment.amount) if next_payment else None,
        next_payment_due_date=next_payment.due_date if next_payment else None,
        description=payment_data.description,
        created_by=principal.id,
    )

    client = debtor.client
    background_tasks.add_task(
        notifier.send_message,
        debt_payment_message(client.full_name, payment, debtor.remaining_debt),
    )
    if became_paid:
        background_tasks.add_task(notifier.send_templated_sms, client.phone, debt_paid_sms(client.full_name))

    logger.info(f"API: Payment on debtor {debtor_id} by {principal.id}")
    return build_debtor_response(debtor)


@router.get("/{debtor_id}/payments", response_model=DebtorPaymentListResponse)
def get_debtor_payments(
    debtor_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    payments = DebtReconciler(db).list_payments(debtor_id)
    return DebtorPaymentListResponse(total=len(payments), payments=[build_payment_response(p) for p in payments])


@router.delete("/{debtor_id}", response_model=DebtorDeleteResponse)
def delete_debtor(
    debtor_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    reversed_debt = DebtReconciler(db).delete_debtor(debtor_id)
    logger.info(f"API: Debtor {debtor_id} deleted by {principal.id}")
    return DebtorDeleteResponse(message=f"Debtor {debtor_id} deleted", reversed_debt=reversed_debt.as_dict())
