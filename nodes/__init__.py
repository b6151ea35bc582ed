"""
nodes 패키지 - 스토어프론트 커머스 흐름 구현체들

- cart_sync.py: 서버 장바구니 미러 (담기/변경/삭제/비우기, 재고 검증)
- pricing.py: 배송비, 쿠폰 할인, 최종 금액 계산
- checkout.py: 결제 StateGraph 노드 (재고 재검증 → 금액 재계산 → 주문 생성)
"""

from .cart_sync import CartSynchronizer, StockValidation
from .pricing import PricingEngine, PriceQuote, DeliveryPolicy, CouponRejection
from .checkout import CheckoutOrchestrator

__all__ = [
    # 장바구니
    "CartSynchronizer",
    "StockValidation",

    # 금액 계산
    "PricingEngine",
    "PriceQuote",
    "DeliveryPolicy",
    "CouponRejection",

    # 결제
    "CheckoutOrchestrator",
]
