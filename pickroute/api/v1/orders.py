"""
订单管理路由模块
下单前校验、时段锁定、下单、状态流转、取餐码核验和评价
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_order_service
from ...core.error_handler import create_success_response
from ...core.exceptions import InvalidRequestError
from ...core.security import get_current_actor, require_role
from ...models.order import Actor, ActorRole, Order, OrderStatus
from ...schemas.order import (
    CreateOrderRequest,
    LockSlotRequest,
    OrderResponse,
    RateOrderRequest,
    UpdateStatusRequest,
    ValidateCartRequest,
    VerifyCodeRequest,
)
from ...services.order_service import OrderService

router = APIRouter()


def _order_payload(order: Order, actor: Actor) -> dict:
    """取餐码只对下单用户和管理员可见，餐厅需由用户出示"""
    show_code = actor.is_admin or (actor.role == ActorRole.USER and actor.subject_id == order.user_id)
    return OrderResponse.from_order(order, show_code=show_code).model_dump(mode="json")


@router.post("/validate-cart")
def validate_cart(req: ValidateCartRequest,
                  actor: Actor = Depends(get_current_actor),
                  service: OrderService = Depends(get_order_service)):
    """校验购物车并按菜单核价"""
    cart = service.validate_cart(req.restaurant_id, req.items)
    return create_success_response(cart.model_dump(mode="json"), "校验通过")


@router.post("/lock-slot")
def lock_slot(req: LockSlotRequest,
              actor: Actor = Depends(get_current_actor),
              service: OrderService = Depends(get_order_service)):
    """预估取餐时段，不占用容量"""
    slot = service.lock_slot(req.restaurant_id, req.arrival_eta_minutes, req.user_late_by_minutes)
    return create_success_response(slot.model_dump(mode="json"), "时段计算完成")


@router.post("")
def create_order(req: CreateOrderRequest,
                 actor: Actor = Depends(require_role(ActorRole.USER)),
                 service: OrderService = Depends(get_order_service)):
    """创建订单"""
    order = service.create_order(
        user_id=actor.subject_id,
        restaurant_id=req.restaurant_id,
        items=req.items,
        arrival_eta_minutes=req.arrival_eta_minutes,
        user_late_by_minutes=req.user_late_by_minutes,
    )
    return create_success_response(_order_payload(order, actor), "下单成功")


@router.get("")
def list_my_orders(status: Optional[OrderStatus] = Query(None, description="状态过滤"),
                   limit: int = Query(50, ge=1, le=200),
                   offset: int = Query(0, ge=0),
                   actor: Actor = Depends(require_role(ActorRole.USER)),
                   service: OrderService = Depends(get_order_service)):
    """获取当前用户的订单列表"""
    orders = service.list_user_orders(actor.subject_id, status=status, limit=limit, offset=offset)
    return create_success_response({
        "orders": [_order_payload(order, actor) for order in orders],
        "count": len(orders),
    }, "查询成功")


@router.get("/restaurant")
def list_restaurant_orders(restaurant_id: Optional[str] = Query(None, description="管理员查询时指定餐厅"),
                           include_closed: bool = Query(False, description="是否包含已完结订单"),
                           actor: Actor = Depends(require_role(ActorRole.RESTAURANT)),
                           service: OrderService = Depends(get_order_service)):
    """获取餐厅待处理订单，按下单时间正序"""
    if actor.role == ActorRole.RESTAURANT:
        restaurant_id = actor.subject_id
    elif not restaurant_id:
        raise InvalidRequestError("管理员查询需指定 restaurant_id", details={"action": "list_restaurant_orders"})

    orders = service.list_restaurant_orders(restaurant_id, include_closed=include_closed)
    return create_success_response({
        "orders": [_order_payload(order, actor) for order in orders],
        "count": len(orders),
    }, "查询成功")


@router.get("/{order_id}")
def get_order(order_id: int,
              actor: Actor = Depends(get_current_actor),
              service: OrderService = Depends(get_order_service)):
    """获取订单详情"""
    order = service.get_order(order_id, actor)
    return create_success_response(_order_payload(order, actor), "查询成功")


@router.put("/{order_id}/status")
def update_order_status(order_id: int, req: UpdateStatusRequest,
                        actor: Actor = Depends(get_current_actor),
                        service: OrderService = Depends(get_order_service)):
    """更新订单状态，状态不变时用于附加延误说明"""
    order = service.update_order_status(order_id, req.status, actor, delay_reason=req.delay_reason)
    return create_success_response(_order_payload(order, actor), "状态已更新")


@router.post("/{order_id}/verify-code")
def verify_pickup_code(order_id: int, req: VerifyCodeRequest,
                       actor: Actor = Depends(require_role(ActorRole.RESTAURANT)),
                       service: OrderService = Depends(get_order_service)):
    """餐厅核验用户出示的取餐码"""
    order = service.verify_pickup_code(order_id, req.pickup_code, actor)
    return create_success_response(_order_payload(order, actor), "取餐完成")


@router.post("/{order_id}/rating")
def rate_order(order_id: int, req: RateOrderRequest,
               actor: Actor = Depends(require_role(ActorRole.USER)),
               service: OrderService = Depends(get_order_service)):
    """评价已取餐订单"""
    order = service.rate_order(order_id, req.rating, req.comment, actor)
    return create_success_response(_order_payload(order, actor), "评价成功")
