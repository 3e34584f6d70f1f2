# backend/routes/orders.py
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Query, status
from sqlalchemy.orm import Session, joinedload
import logging

from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log_safely
from utils.razorpay_client import get_payment_gateway
from models.users import User
from models.order import Order, OrderStatus
from schemas.order import (
    OrderCreatePayload, OrderPlacedResponse, OrderResponse, OrdersPage, OrderItemOut,
    OrderTimelineOut, ShippingAddressOut, PaymentConfirmPayload,
)
from services import checkout, payments, order_status
from services.errors import CheckoutError
from services.notifications import BackgroundNotifier, get_notification_sink

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None

# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        subtotal=round(order.subtotal, 2),
        discount=round(order.discount, 2),
        delivery_fee=round(order.delivery_fee, 2),
        total=round(order.total, 2),
        coupon_code=order.coupon_code,
        notes=order.notes,
        delivery_slot_label=order.delivery_slot_label,
        shipping_address=ShippingAddressOut(
            recipient_name=order.shipping_recipient_name,
            phone=order.shipping_phone,
            line1=order.shipping_line1,
            line2=order.shipping_line2,
            landmark=order.shipping_landmark,
            city=order.shipping_city,
            state=order.shipping_state,
            postal_code=order.shipping_postal_code,
        ),
        created_at=order.created_at,
        items=[OrderItemOut.model_validate(it) for it in order.items],
        timeline=[OrderTimelineOut.model_validate(t) for t in order.timeline],
    )

# Place an order from the current cart
@router.post("", response_model=OrderPlacedResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: OrderCreatePayload,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway = Depends(get_payment_gateway),
    sink = Depends(get_notification_sink),
):
    try:
        placed = await checkout.place_order(
            db, current_user.id, payload.address_id, payload.payment_method,
            coupon_code=payload.coupon_code, notes=payload.notes,
            delivery_slot_id=payload.delivery_slot_id,
            gateway=gateway, notifier=BackgroundNotifier(background_tasks, sink),
        )
    except CheckoutError as e:
        write_log_safely(
            db, user_id=current_user.id, action="ORDER_PLACE", resource="orders", status="FAIL",
            ip=_client_ip(request),
            meta={**e.details, "code": e.code, "payment_method": payload.payment_method.value},
        )
        raise

    write_log_safely(
        db, user_id=current_user.id, action="ORDER_PLACE", resource="orders", status="SUCCESS",
        ip=_client_ip(request),
        meta={"order_id": placed.order_id, "order_number": placed.order_number,
              "payment_method": payload.payment_method.value, "total": placed.total},
    )
    return OrderPlacedResponse(**placed.__dict__)

# List the user's orders, newest first
@router.get("", response_model=OrdersPage)
def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    order_status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    q = db.query(Order).filter(Order.user_id == current_user.id)
    if order_status_filter:
        q = q.filter(Order.status == order_status_filter)
    total = q.count()
    rows: List[Order] = (
        q.options(joinedload(Order.items), joinedload(Order.timeline))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size).limit(page_size).all()
    )
    items = [_order_to_out(o) for o in rows]
    return {"items": items, "total": total, "page": page, "page_size": page_size}

# Get details of a specific order
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _order_to_out(payments.get_order(db, order_id, current_user.id))

# Customer cancellation (pending or confirmed orders only)
@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    sink = Depends(get_notification_sink),
):
    order = order_status.cancel_order(db, order_id, current_user.id,
                                      notifier=BackgroundNotifier(background_tasks, sink))
    write_log_safely(db, user_id=current_user.id, action="ORDER_CANCEL", resource="orders", status="SUCCESS",
                     ip=_client_ip(request), meta={"order_id": order.id})
    return _order_to_out(order)

# Second phase of an online payment: signed reference from the gateway checkout
@router.post("/{order_id}/payment/confirm", response_model=OrderResponse)
def confirm_online_payment(
    order_id: int,
    payload: PaymentConfirmPayload,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway = Depends(get_payment_gateway),
    sink = Depends(get_notification_sink),
):
    try:
        order = payments.confirm_online_payment(
            db, order_id, payload.model_dump(), gateway,
            user_id=current_user.id, notifier=BackgroundNotifier(background_tasks, sink),
        )
    except CheckoutError as e:
        write_log_safely(db, user_id=current_user.id, action="PAYMENT_CONFIRM", resource="orders",
                         status="FAIL", ip=_client_ip(request),
                         meta={"order_id": order_id, "code": e.code})
        raise

    write_log_safely(db, user_id=current_user.id, action="PAYMENT_CONFIRM", resource="orders",
                     status="SUCCESS", ip=_client_ip(request),
                     meta={"order_id": order.id, "gateway_payment_id": payload.gateway_payment_id})
    return _order_to_out(order)

# User closed the payment window: release the reservation
@router.post("/{order_id}/payment/cancel", response_model=OrderResponse)
def cancel_pending_online_order(
    order_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    sink = Depends(get_notification_sink),
):
    order = payments.cancel_pending_online_order(
        db, order_id, user_id=current_user.id, notifier=BackgroundNotifier(background_tasks, sink)
    )
    write_log_safely(db, user_id=current_user.id, action="PAYMENT_CANCEL", resource="orders",
                     status="SUCCESS", ip=_client_ip(request), meta={"order_id": order.id})
    return _order_to_out(order)
