# Overview: Returns against a recorded order; line update and restock in one unit of work.

"""
Return processing.

A return touches two aggregates: the order line (returned_quantity and the
derived totals) and the machine's on-hand stock. Both change inside a single
write transaction with the order, its lines and the machine locked, so the
returnable bound is checked against current values and a failure anywhere
leaves the line and the stock as they were.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Machine, Order, OrderItem
from ..models.orders import ORDER_STATUS_RETURNED, PAYMENT_STATUS_REFUNDED
from ..errors import NotFoundError, PosError, TransactionAbortError, ValidationError
from ..validation import to_int
from .concurrency import begin_write, lock_for_update, run_with_retry
from .inventory_service import restock
from .pricing_service import recompute_totals
from machinepos.time_utils import utcnow


logger = logging.getLogger(__name__)


def _order_for_update(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).populate_existing().first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    lock_for_update(db.session.query(OrderItem).filter_by(order_id=order.id)).populate_existing().all()
    return order


def return_item(order_id: int, item_ref, quantity) -> dict:
    """
    Return ``quantity`` units of one line of an order.

    ``item_ref`` is the line's machine id, its item code, or "#<position>".

    Returns {"order", "returned_item", "updated_stock"}.

    Raises:
        NotFoundError: no such order, no matching line, or the machine was removed
        ValidationError: quantity below 1 or above what is still returnable
        TransactionAbortError: the unit of work failed; nothing was written
    """
    quantity = to_int(quantity, "quantity")
    if quantity < 1:
        raise ValidationError("Return quantity must be at least 1", errors={"quantity": "must be at least 1"})

    def _op():
        begin_write()
        order = _order_for_update(order_id)

        item = order.find_item(item_ref)
        if item is None:
            raise NotFoundError("Item not found in order", details={"order_id": order_id, "item": str(item_ref)})

        available = item.available_to_return
        if quantity > available:
            raise ValidationError(
                f"Cannot return {quantity} items. Only {available} available for return.",
                errors={"quantity": "exceeds returnable quantity"},
                details={"available_to_return": available, "requested": quantity},
            )

        machine = lock_for_update(db.session.query(Machine).filter_by(id=item.machine_id)).populate_existing().first()
        if machine is None:
            logger.warning(
                "Return on order %s refused: machine %s no longer exists",
                order.order_code,
                item.machine_id,
            )
            raise NotFoundError("Machine not found in inventory", details={"machine_id": item.machine_id})

        item.returned_quantity = (item.returned_quantity or 0) + quantity
        if item.returned_quantity >= item.quantity:
            item.returned = True
        if item.returned_at is None:
            item.returned_at = utcnow()
        recompute_totals(order)

        restock(machine, quantity)
        if order.fully_returned:
            order.order_status = ORDER_STATUS_RETURNED
            order.payment_status = PAYMENT_STATUS_REFUNDED
        db.session.commit()
        return order, item, machine

    try:
        order, item, machine = run_with_retry(_op)
    except PosError:
        db.session.rollback()
        raise
    except Exception as exc:
        db.session.rollback()
        logger.exception("Return on order %s aborted", order_id)
        raise TransactionAbortError("Error processing return") from exc

    logger.info(
        "Return processed on order %s: %s x%d, stock now %d",
        order.order_code,
        item.item_code,
        quantity,
        machine.quantity,
    )

    return {
        "order": order,
        "returned_item": {
            "machine_id": item.machine_id,
            "item_code": item.item_code,
            "name": item.name,
            "returned_quantity": quantity,
            "total_returned": item.returned_quantity,
            "fully_returned": bool(item.returned),
        },
        "updated_stock": {
            "machine_id": machine.id,
            "name": machine.name,
            "new_quantity": machine.quantity,
        },
    }
