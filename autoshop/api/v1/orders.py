from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from autoshop.core.dependencies import Principal, get_current_principal, get_db, get_event_publisher, get_notifier
from autoshop.logger_config import logger
from autoshop.models.money import Money
from autoshop.models.order import Order, OrderStatus, PaymentType
from autoshop.schemas.order import (
    OrderCreate,
    OrderDeleteResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderPaymentCreate,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    OrderUpdate,
)
from autoshop.services.events import EventPublisher
from autoshop.services.notifications import NotificationSink, order_created_message, order_created_sms
from autoshop.services.order_service import OrderService

router = APIRouter()


def build_order_response(order: Order, index: Optional[int] = None) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        client_id=order.client_id,
        branch_id=order.branch_id,
        products=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                quantity=item.quantity,
                price=item.price,
                line_total=item.price * item.quantity,
                next_oil_change_date=item.next_oil_change_date,
            )
            for item in order.items
        ],
        total_amount=order.total_amount.as_dict(),
        paid_amount=order.paid_amount.as_dict(),
        debt_amount=order.debt_amount.as_dict(),
        profit_amount=order.profit_amount.as_dict(),
        payment_type=order.payment_type,
        status=order.status,
        date_returned=order.due_date,
        notes=order.notes or "",
        created_by=order.created_by,
        created_at=order.created_at,
        updated_at=order.updated_at,
        is_deleted=order.is_deleted,
        index=index,
    )


def _event_payload(order: Order, response: OrderResponse) -> dict:
    payload = response.model_dump()
    payload["client"] = {
        "id": order.client_id,
        "name": order.client.full_name if order.client else None,
        "phone": order.client.phone if order.client else None,
    }
    payload["branch"] = {
        "id": order.branch_id,
        "name": order.branch.name if order.branch else None,
    }
    return payload


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: OrderCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """
    Submit a new order.
    A completed order takes stock immediately; a completed debt order books
    the debt on the client's open debtor.
    """
    service = OrderService(db)
    order = service.create(order_data, created_by=principal.id)
    response = build_order_response(order, service.daily_index(order, branch_id=order.branch_id))

    background_tasks.add_task(publisher.publish, "new_order", _event_payload(order, response), order.branch_id)
    background_tasks.add_task(
        notifier.send_message,
        order_created_message(
            order.id,
            order.client.full_name,
            order.branch.name,
            order.total_amount,
            order.paid_amount,
            order.debt_amount,
            order.status.value,
        ),
    )
    background_tasks.add_task(
        notifier.send_templated_sms,
        order.client.phone,
        order_created_sms(order.client.full_name, order.id, order.total_amount),
    )

    logger.info(f"API: Order #{order.id} created by {principal.id}")
    return response


@router.get("", response_model=OrderListResponse)
def get_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    client_id: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    payment_type: Optional[PaymentType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """
    Get orders, newest first, each with its daily index among the same
    client/branch filter.
    """
    service = OrderService(db)
    orders, total = service.list_orders(
        skip=skip,
        limit=limit,
        client_id=client_id,
        branch_id=branch_id,
        status=status,
        payment_type=payment_type,
        start_date=start_date,
        end_date=end_date,
    )
    return OrderListResponse(
        orders=[
            build_order_response(order, service.daily_index(order, client_id=client_id, branch_id=branch_id))
            for order in orders
        ],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/stats/summary", response_model=OrderStatsResponse)
def get_order_stats(
    branch_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Per-status totals of amount, paid, debt and profit."""
    return OrderStatsResponse(**OrderService(db).get_stats(branch_id=branch_id, start_date=start_date, end_date=end_date))


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    client_id: Optional[str] = Query(None),
    branch_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    service = OrderService(db)
    order = service.get(order_id)
    return build_order_response(order, service.daily_index(order, client_id=client_id, branch_id=branch_id))


def _publish_update(background_tasks: BackgroundTasks, publisher: EventPublisher, service: OrderService, order: Order) -> OrderResponse:
    response = build_order_response(order, service.daily_index(order, branch_id=order.branch_id))
    background_tasks.add_task(publisher.publish, "order_updated", _event_payload(order, response), order.branch_id)
    return response


@router.patch("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: int,
    order_data: OrderUpdate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """
    Edit an order. Only products, amounts, payment_type, status,
    date_returned and notes can change; products replace the line items.
    """
    service = OrderService(db)
    order = service.update(order_id, order_data, updated_by=principal.id)
    logger.info(f"API: Order #{order_id} updated by {principal.id}")
    return _publish_update(background_tasks, publisher, service, order)


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    status_data: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    service = OrderService(db)
    order = service.change_status(order_id, status_data.status, updated_by=principal.id)
    logger.info(f"API: Order #{order_id} status set to {order.status.value} by {principal.id}")
    return _publish_update(background_tasks, publisher, service, order)


@router.post("/{order_id}/payments", response_model=OrderResponse)
def add_order_payment(
    order_id: int,
    payment_data: OrderPaymentCreate,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Pay down the order's outstanding debt."""
    service = OrderService(db)
    order = service.add_payment(
        order_id,
        Money.of(payment_data.amount),
        payment_data.payment_type,
        created_by=principal.id,
    )
    logger.info(f"API: Payment added to order #{order_id} by {principal.id}")
    return _publish_update(background_tasks, publisher, service, order)


@router.delete("/{order_id}", response_model=OrderDeleteResponse)
def delete_order(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order = OrderService(db).delete(order_id, deleted_by=principal.id)
    logger.info(f"API: Order #{order_id} deleted by {principal.id}")
    return OrderDeleteResponse(message=f"Order #{order_id} deleted", order=build_order_response(order))
