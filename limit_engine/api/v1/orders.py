from fastapi import APIRouter, Depends, HTTPException

from limit_engine.core.container import Container
from limit_engine.core.deps import current_user_id, get_container
from limit_engine.core.errors import InvalidOrderInput, OrderNotFound
from limit_engine.models.order import OrderStatus
from limit_engine.schemas.order import CancelResult, OrderCreate, OrderOut
from limit_engine.services.orders import parse_expiry

router = APIRouter()


@router.post("/orders", response_model=OrderOut, status_code=201)
def post_order(
    payload: OrderCreate,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    try:
        expiry_at = payload.expiry_at if payload.expiry_at is not None else parse_expiry(payload.expiry)
        return container.orders.create_order(
            owner_id=user_id,
            wallet_address=payload.wallet_address,
            direction=payload.direction,
            token_in=payload.token_in,
            token_out=payload.token_out,
            amount=payload.amount,
            trigger_price=payload.trigger_price,
            slippage=payload.slippage,
            expiry_at=expiry_at,
        )
    except InvalidOrderInput as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/orders", response_model=list[OrderOut])
def get_orders(
    status: str | None = None,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    if status is None:
        return container.orders.list_orders(user_id)
    try:
        wanted = OrderStatus(status.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"unknown status {status}")
    return container.orders.list_orders(user_id, wanted)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    try:
        return container.orders.get_order(order_id, user_id)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")


@router.post("/orders/{order_id}/cancel", response_model=CancelResult)
def cancel_order(
    order_id: int,
    user_id: int = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    try:
        cancelled = container.orders.cancel_order(order_id, user_id)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")

    order = container.orders.get_order(order_id, user_id)
    if not cancelled:
        detail = "already finalized" if order.status.is_terminal else "execution in progress"
        raise HTTPException(status_code=409, detail=detail)

    return CancelResult(order_id=order_id, cancelled=True, status=order.status.value, detail="cancelled")
