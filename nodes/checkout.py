"""
결제(주문 생성) 흐름 노드

    AddressRequired → StockValidating → ReadyToSubmit → Submitting → Confirmed
                           └─ Failed                      └─ Failed

각 노드는 CheckoutState를 받아 변경할 필드만 dict로 반환하고,
분기는 workflow.create_checkout_graph의 조건부 엣지가 결정합니다.
"""

import asyncio
import logging
from dataclasses import fields
from typing import Any, Dict, Optional, TYPE_CHECKING

from graph_interfaces import CheckoutStage, CheckoutState, Order, PAYMENT_MODE_COD
from utils.errors import ErrorKind, Result

if TYPE_CHECKING:
    from auth_system.token_session import TokenSessionManager
    from nodes.cart_sync import CartSynchronizer
    from nodes.pricing import PricingEngine
    from orders_api import OrderService

logger = logging.getLogger("CHECKOUT")

REDIRECT_LOGIN = "login"
REDIRECT_CART = "cart"

INVALID_STOCK_MESSAGE = "일부 상품의 재고가 부족합니다."
CANCELLED_MESSAGE = "결제가 취소되었습니다."
IN_PROGRESS_MESSAGE = "이미 결제가 진행 중입니다."

REDIRECT_MESSAGES = {
    REDIRECT_LOGIN: "로그인이 필요합니다.",
    REDIRECT_CART: "장바구니와 배송지를 확인해주세요.",
}

_STATE_FIELDS = {f.name for f in fields(CheckoutState)}


def _advance(state: CheckoutState, stage: CheckoutStage, **updates: Any) -> Dict[str, Any]:
    """stage 전이 + history 기록"""
    logger.info(f"checkout: {state.stage.value} -> {stage.value}")
    return {"stage": stage, "history": list(state.history) + [stage.value], **updates}


def _fail(state: CheckoutState, kind: Optional[ErrorKind], message: Optional[str], **updates: Any) -> Dict[str, Any]:
    logger.warning(f"checkout 실패 ({state.stage.value}): {message}")
    return _advance(state, CheckoutStage.FAILED,
                    error_kind=kind.value if kind else None, error_message=message, **updates)


def describe_invalid_items(invalid_items) -> str:
    lines = []
    for item in invalid_items:
        name = item.get("productName") or item.get("product_name") or item.get("product_variant_id", "")
        available = item.get("availableStock", item.get("stock"))
        requested = item.get("requestedQuantity", item.get("quantity"))
        lines.append(f"{name} (요청 {requested}, 재고 {available})")
    return f"{INVALID_STOCK_MESSAGE} " + ", ".join(lines) if lines else INVALID_STOCK_MESSAGE


def to_state(values: Any) -> CheckoutState:
    """ainvoke 결과(dict)를 CheckoutState로 변환"""
    if isinstance(values, CheckoutState):
        return values
    return CheckoutState(**{k: v for k, v in dict(values).items() if k in _STATE_FIELDS})


class CheckoutOrchestrator:
    """
    주소 선택 → 재고 재검증 → 금액 재계산 → 주문 생성 → 장바구니 비우기

    한 번에 하나의 run만 진행합니다. 주문 생성 요청이 시작된 뒤에는 취소하지 않고
    주문 생성과 장바구니 비우기를 끝까지 마칩니다.
    """

    def __init__(self, session_manager: "TokenSessionManager", cart: "CartSynchronizer",
                 pricing: "PricingEngine", orders: "OrderService"):
        self.session_manager = session_manager
        self.cart = cart
        self.pricing = pricing
        self.orders = orders

        self.state = CheckoutState()
        self._graph = None
        self._task: Optional[asyncio.Task] = None
        self._submission: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def graph(self):
        if self._graph is None:
            from workflow import create_checkout_graph
            self._graph = create_checkout_graph(self)
        return self._graph

    @property
    def in_progress(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def submitting(self) -> bool:
        return self._submission is not None and not self._submission.done()

    # nodes
    async def require_entry(self, state: CheckoutState) -> Dict[str, Any]:
        held = self.session_manager.acquire()
        if held and not self.session_manager.is_authenticated:
            # 만료된 토큰은 로그인 화면으로 보내기 전에 한 번 갱신 시도
            logger.info("checkout 진입: 만료된 토큰 갱신 시도")
            await self.session_manager.refresh(stale_token=held)
        if not self.session_manager.is_authenticated:
            return {"redirect": REDIRECT_LOGIN, "history": list(state.history) + [f"redirect:{REDIRECT_LOGIN}"]}

        if self.cart.state.is_empty:
            await self.cart.fetch_cart()
        if self.cart.state.is_empty or not state.address_id:
            logger.info(f"checkout 진입 불가: cart_empty={self.cart.state.is_empty}, address={state.address_id}")
            return {"redirect": REDIRECT_CART, "history": list(state.history) + [f"redirect:{REDIRECT_CART}"]}

        return _advance(state, CheckoutStage.STOCK_VALIDATING, redirect=None)

    async def validate_stock(self, state: CheckoutState) -> Dict[str, Any]:
        result = await self.cart.validate_stock()
        if not result.success:
            return _fail(state, result.error, result.message)

        validation = result.data
        if not validation.is_valid:
            return _fail(state, ErrorKind.BUSINESS, describe_invalid_items(validation.invalid_items),
                         invalid_items=validation.invalid_items)
        return _advance(state, CheckoutStage.READY_TO_SUBMIT)

    async def price_order(self, state: CheckoutState) -> Dict[str, Any]:
        """제출 직전 서버 장바구니 요약으로 배송비/할인을 다시 계산"""
        fetched = await self.cart.fetch_cart()
        if not fetched.success:
            return _fail(state, fetched.error, fetched.message)

        summary = self.cart.summary
        if state.coupon_code:
            applied = await self.pricing.apply_coupon(state.coupon_code, summary)
            if not applied.success:
                return _fail(state, applied.error, applied.message, summary=summary)
            quote = applied.data
        else:
            quote = self.pricing.quote(summary)

        logger.info(f"checkout 금액: subtotal={quote.subtotal}, delivery={quote.delivery_charge}, "
                    f"discount={quote.discount}, final={quote.final_total}")
        return _advance(state, CheckoutStage.SUBMITTING, summary=summary, quote=quote)

    async def submit_order(self, state: CheckoutState) -> Dict[str, Any]:
        self._submission = asyncio.ensure_future(self._submit(state))
        self._submission.add_done_callback(self._log_detached_submission)
        return await asyncio.shield(self._submission)

    async def _submit(self, state: CheckoutState) -> Dict[str, Any]:
        quote = state.quote
        created = await self.orders.create(
            address_id=state.address_id,
            payment_mode=state.payment_mode or PAYMENT_MODE_COD,
            cartSummary=state.summary.to_dict(),
            delivery_charge=quote.delivery_charge,
            couponCode=quote.coupon_code,
            discount=quote.discount,
        )
        if not created.success:
            return _fail(state, created.error, created.message)

        order: Order = created.data
        cleared = await self.cart.clear()
        if not cleared.success:
            logger.warning(f"주문 {order.order_id} 생성 후 장바구니 비우기 실패: {cleared.message}")
        return _advance(state, CheckoutStage.CONFIRMED, order_id=order.order_id, order=order)

    def _log_detached_submission(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        outcome = task.result()
        if self.in_progress:
            return
        # run이 먼저 중단된 경우에도 생성된 주문은 상태에 남깁니다
        if outcome.get("order_id") and self.state.order_id != outcome["order_id"]:
            logger.info(f"중단된 checkout의 주문 생성 결과 반영: {outcome['order_id']}")
            self.state.stage = outcome["stage"]
            self.state.order_id = outcome["order_id"]
            self.state.order = outcome.get("order")

    # run
    def start(self, address_id: Optional[str], coupon_code: Optional[str] = None) -> asyncio.Task:
        return asyncio.ensure_future(self.run(address_id, coupon_code))

    async def run(self, address_id: Optional[str], coupon_code: Optional[str] = None) -> Result:
        if self.in_progress:
            return Result.fail(ErrorKind.VALIDATION, IN_PROGRESS_MESSAGE)

        self._cancel_requested = False
        self._submission = None
        initial = CheckoutState(
            address_id=str(address_id) if address_id is not None else None,
            coupon_code=(coupon_code or "").strip() or None,
            history=[CheckoutStage.ADDRESS_REQUIRED.value],
        )
        self.state = initial
        self._task = asyncio.ensure_future(self.graph.ainvoke(initial))
        try:
            final = await self._task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            logger.info("checkout 취소됨")
            self.state.stage = CheckoutStage.CANCELLED
            self.state.history.append(CheckoutStage.CANCELLED.value)
            return Result.fail(ErrorKind.VALIDATION, CANCELLED_MESSAGE, data={"stage": CheckoutStage.CANCELLED})

        self.state = to_state(final)
        return self.outcome()

    def cancel(self) -> bool:
        """주문 생성 요청 전이면 진행 중인 run을 취소합니다."""
        if not self.in_progress:
            return False
        if self.submitting:
            logger.info("주문 생성 중에는 취소할 수 없습니다")
            return False
        self._cancel_requested = True
        return self._task.cancel()

    def outcome(self) -> Result:
        state = self.state
        if state.redirect:
            kind = ErrorKind.AUTH if state.redirect == REDIRECT_LOGIN else ErrorKind.VALIDATION
            return Result.fail(kind, REDIRECT_MESSAGES[state.redirect], data={"redirect": state.redirect})

        if state.stage == CheckoutStage.CONFIRMED:
            return Result.ok({"order_id": state.order_id, "order": state.order, "quote": state.quote},
                             f"주문이 완료되었습니다. (주문번호: {state.order_id})")

        kind = ErrorKind(state.error_kind) if state.error_kind else ErrorKind.NETWORK
        return Result.fail(kind, state.error_message or INVALID_STOCK_MESSAGE,
                           data={"stage": state.stage, "invalid_items": state.invalid_items})
