from decimal import Decimal
from typing import Any, Dict, Literal, Optional
import logging

from pydantic import BaseModel, Field

from graph_interfaces import Order, OrderStatus, PAYMENT_MODE_COD, CANCELLABLE_STATUSES
from utils.errors import ErrorKind, Result, StorefrontError
from utils.gateway import RequestGateway
from utils.validation import build_payload, to_form

logger = logging.getLogger(__name__)

ORDER_STATUS_FILTERS = ["all", "pending", "processing", "shipped", "delivered", "cancelled"]


class OrderCreation(BaseModel):
    address_id: str = Field(min_length=1)
    payment_mode: Literal["cod"] = PAYMENT_MODE_COD
    cartSummary: Dict[str, Any]
    delivery_charge: Decimal = Field(ge=0)
    couponCode: Optional[str] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)


class OrderService:
    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    async def create(self, **fields: Any) -> Result:
        """주문 스냅샷을 단일 생성 요청으로 전송합니다."""
        try:
            payload = build_payload(OrderCreation, **fields)
        except StorefrontError as e:
            return Result.from_error(e)
        result = await self.gateway.request("POST", "/orders", to_form(payload))
        if not result.success:
            return result

        data = result.data if isinstance(result.data, dict) else {}
        raw_order = data.get("order") if isinstance(data.get("order"), dict) else data
        order = Order.from_dict(raw_order)
        logger.info(f"주문 생성 완료: {order.order_id}")
        return Result.ok(order, result.message)

    async def list(self, page: int = 1, limit: int = 10, status: Optional[str] = None) -> Result:
        """주문 목록 조회 (status가 'all'이면 필터 생략)"""
        if status and status not in ORDER_STATUS_FILTERS:
            return Result.fail(ErrorKind.VALIDATION, f"지원하지 않는 주문 상태 필터입니다: {status}")
        query = {"page": page, "limit": limit, "status": None if status in (None, "all") else status}
        result = await self.gateway.request("GET", "/orders", query=query)
        if not result.success:
            return result

        data = result.data or {}
        pagination = data.get("pagination") or {}
        return Result.ok({
            "orders": [Order.from_dict(o) for o in data.get("orders") or []],
            "current_page": pagination.get("currentPage", page),
            "total_pages": pagination.get("totalPages", 1),
        }, result.message)

    async def get(self, order_id) -> Result:
        result = await self.gateway.request("GET", f"/orders/{order_id}")
        if not result.success:
            return result
        data = result.data or {}
        return Result.ok(Order.from_dict(data.get("order") or {}, items=data.get("items")), result.message)

    async def track(self, order_id) -> Result:
        return await self.gateway.request("GET", f"/orders/track/{order_id}")

    async def cancel(self, order_id, known_status: Optional[str] = None) -> Result:
        """대기/처리중 주문만 취소 가능. 알려진 상태가 그 외이면 요청하지 않습니다."""
        if known_status is not None and OrderStatus.parse(known_status) not in CANCELLABLE_STATUSES:
            return Result.fail(ErrorKind.VALIDATION, "이미 배송이 시작되었거나 종료된 주문은 취소할 수 없습니다.")
        result = await self.gateway.request("POST", f"/orders/cancel/{order_id}")
        if result.success:
            logger.info(f"주문 취소 완료: {order_id}")
        return result
