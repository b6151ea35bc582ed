import asyncio
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from graph_interfaces import CartItem, CartState, CartSummary
from utils.errors import ErrorKind, Result
from utils.gateway import RequestGateway

logger = logging.getLogger("CART_SYNC")

STOCK_EXCEEDED_MESSAGE = "재고 수량을 초과할 수 없습니다."


class StockValidation(NamedTuple):
    is_valid: bool
    invalid_items: List[Dict[str, Any]]


class CartSynchronizer:
    """
    서버 장바구니의 로컬 미러 (items, count, summary)

    모든 변경은 서버 확인 후 재조회(confirm-then-refresh)로만 반영하고,
    변경 요청과 그 뒤의 재조회는 카트 단위 락으로 직렬화합니다.
    """

    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway
        self.state = CartState()
        self._lock = asyncio.Lock()

    @property
    def items(self) -> List[CartItem]:
        return self.state.items

    @property
    def count(self) -> int:
        return self.state.count

    @property
    def summary(self) -> CartSummary:
        return self.state.summary

    def reset(self) -> None:
        """로그아웃 시 로컬 미러만 비웁니다 (네트워크 호출 없음)"""
        self.state = CartState()

    async def fetch_cart(self) -> Result:
        result = await self.gateway.request("GET", "/cart")
        if not result.success:
            logger.warning(f"장바구니 조회 실패 (이전 상태 유지): {result.message}")
            return result

        data = result.data if isinstance(result.data, dict) else {}
        self.state.items = [CartItem.from_dict(i) for i in data.get("items") or []]
        self.state.summary = CartSummary.from_dict(data.get("summary"))
        return Result.ok(self.state)

    async def fetch_count(self) -> Result:
        result = await self.gateway.request("GET", "/cart/count")
        if not result.success:
            logger.warning(f"장바구니 수량 조회 실패 (이전 상태 유지): {result.message}")
            return result

        data = result.data if isinstance(result.data, dict) else {}
        self.state.count = int(data.get("itemCount") or 0)
        return Result.ok(self.state.count)

    async def fetch_summary(self) -> Result:
        result = await self.gateway.request("GET", "/cart/summary")
        if not result.success:
            logger.warning(f"장바구니 요약 조회 실패 (이전 상태 유지): {result.message}")
            return result

        data = result.data if isinstance(result.data, dict) else {}
        self.state.summary = CartSummary.from_dict(data.get("summary", data))
        return Result.ok(self.state.summary)

    async def refresh(self) -> Result:
        cart_result = await self.fetch_cart()
        count_result = await self.fetch_count()
        if not cart_result.success:
            return cart_result
        if not count_result.success:
            return count_result
        return Result.ok(self.state)

    def _guard(self, variant_id: str, quantity: Any, added: bool = False) -> Optional[Result]:
        """네트워크 호출 전 수량 검증. 위반 시 Result, 통과 시 None"""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return Result.fail(ErrorKind.VALIDATION, "수량은 정수여야 합니다.")
        if quantity < 0 or (added and quantity == 0):
            return Result.fail(ErrorKind.VALIDATION, "수량이 올바르지 않습니다.")

        item = self.state.find(variant_id)
        if item is None:
            return None
        target = item.quantity + quantity if added else quantity
        if target > item.available_stock:
            logger.info(f"재고 초과 요청 차단: variant={variant_id}, 요청={target}, 재고={item.available_stock}")
            return Result.fail(ErrorKind.VALIDATION, STOCK_EXCEEDED_MESSAGE, warning=True)
        return None

    async def _mutate(self, action: str, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                      guard: Optional[Callable[[], Optional[Result]]] = None) -> Result:
        async with self._lock:
            # 직전 변경 후 재조회된 미러 기준으로 검사
            rejected = guard() if guard else None
            if rejected:
                return rejected
            result = await self.gateway.request(method, path, body)
            if not result.success:
                logger.warning(f"장바구니 {action} 실패: {result.message}")
                return result

            logger.info(f"장바구니 {action} 완료, 재조회")
            refreshed = await self.refresh()
            if not refreshed.success:
                logger.warning(f"장바구니 {action} 후 재조회 실패: {refreshed.message}")
            return Result.ok(self.state, result.message)

    async def add_item(self, variant_id, quantity: int = 1) -> Result:
        variant_id = str(variant_id)
        return await self._mutate("담기", "POST", "/cart",
                                  {"product_variant_id": variant_id, "quantity": quantity},
                                  guard=lambda: self._guard(variant_id, quantity, added=True))

    async def update_item(self, variant_id, quantity: int) -> Result:
        variant_id = str(variant_id)
        return await self._mutate("수량 변경", "PATCH", "/cart/update",
                                  {"product_variant_id": variant_id, "quantity": quantity},
                                  guard=lambda: self._guard(variant_id, quantity))

    async def remove_item(self, variant_id) -> Result:
        return await self._mutate("삭제", "DELETE", "/cart/remove",
                                  {"product_variant_id": str(variant_id)})

    async def clear(self) -> Result:
        return await self._mutate("비우기", "DELETE", "/cart")

    async def validate_stock(self) -> Result:
        """결제 직전 실재고 기준으로 장바구니 라인이 모두 충족 가능한지 서버에 확인"""
        result = await self.gateway.request("POST", "/cart/validate")
        data = result.data if isinstance(result.data, dict) else None

        if not result.success:
            if result.error == ErrorKind.BUSINESS and data and "invalidItems" in data:
                return Result.ok(StockValidation(False, list(data.get("invalidItems") or [])), result.message)
            logger.warning(f"재고 검증 실패: {result.message}")
            return result

        data = data or {}
        validation = StockValidation(bool(data.get("isValid")), list(data.get("invalidItems") or []))
        if not validation.is_valid:
            logger.info(f"재고 부족 라인 {len(validation.invalid_items)}개")
        return Result.ok(validation, result.message)
