"""
Service-layer errors.

Services raise these; the handlers in ``autoshop.common.error_handlers``
turn them into JSON responses with the matching status code.
"""

from decimal import Decimal
from typing import Any, List, Optional

from fastapi import status


class ServiceError(ValueError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InsufficientStockError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, product_id: str, product_name: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name}: available {available}, requested {requested}",
            errors=[{
                "product": product_id,
                "name": product_name,
                "available": available,
                "requested": requested,
            }],
        )


class MissingDueDateError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, debt_amount=None):
        super().__init__(
            "date_returned is required when an order is paid on debt",
            errors=[{"field": "date_returned", "debt_amount": _plain(debt_amount)}],
        )


class UnauthorizedError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InternalError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _plain(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "as_dict"):
        return {k: str(v) for k, v in value.as_dict().items()}
    return value
