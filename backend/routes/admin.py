# backend/routes/admin.py
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from schemas.order import OrderResponse, OrderStatusPatch, ReclaimResponse
from routes.orders import _order_to_out
from services import order_status, reclaim
from services.notifications import BackgroundNotifier, get_notification_sink
from utils.audit import write_log_safely
from utils.tokenJWT import STAFF_ROLES, role_required

router = APIRouter(prefix="/admin", tags=["Admin"])

# Move an order through fulfillment (or cancel it)
@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STAFF_ROLES)),
    sink = Depends(get_notification_sink),
):
    order = order_status.update_status(
        db, order_id, payload.status, payload.payment_status,
        notifier=BackgroundNotifier(background_tasks, sink),
    )
    write_log_safely(db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders",
                     status="SUCCESS", ip=request.client.host if request.client else None,
                     meta={"order_id": order.id, "new": payload.status.value})
    return _order_to_out(order)

# Release stock held by online orders whose payment window lapsed
@router.post("/orders/reclaim", response_model=ReclaimResponse)
def reclaim_pending_orders(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required(*STAFF_ROLES)),
    sink = Depends(get_notification_sink),
):
    reclaimed = reclaim.reclaim_abandoned_online_orders(db, notifier=sink)
    write_log_safely(db, user_id=current_user.id, action="ORDER_RECLAIM", resource="orders",
                     status="SUCCESS", ip=request.client.host if request.client else None,
                     meta={"order_ids": reclaimed})
    return ReclaimResponse(reclaimed_order_ids=reclaimed)
