"""
주문 금액 계산

배송비, 쿠폰 할인, 최종 결제금액을 계산합니다. 쿠폰 조회(apply_coupon)를 제외한 모든 계산은
부수효과가 없는 순수 함수입니다.

    deliveryCharge = subtotal > FREE_THRESHOLD ? 0 : FLAT_DELIVERY_FEE
    discount       = flat -> value / percentage -> value/100 * subtotal / 없음 -> 0
    finalTotal     = max(0, subtotal + tax + deliveryCharge - discount)
"""

import logging
from datetime import datetime, time
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import NamedTuple, Optional, TYPE_CHECKING

from config import config
from graph_interfaces import CartSummary, Coupon, CouponKind, to_decimal
from utils.errors import ErrorKind, Result

if TYPE_CHECKING:
    from catalog_api import CatalogService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class DeliveryPolicy(NamedTuple):
    """무료배송 기준 금액(초과 시 무료)과 기본 배송비"""

    free_threshold: Decimal
    flat_fee: Decimal

    @classmethod
    def from_config(cls) -> "DeliveryPolicy":
        return cls(to_decimal(config.FREE_DELIVERY_THRESHOLD), to_decimal(config.FLAT_DELIVERY_FEE))


class PriceQuote(NamedTuple):
    """금액 계산 결과"""

    subtotal: Decimal
    tax: Decimal
    delivery_charge: Decimal
    discount: Decimal
    final_total: Decimal
    coupon_code: Optional[str] = None


class CouponRejection(str, Enum):
    EXPIRED = "expired"
    EXHAUSTED = "usage_exhausted"
    NOT_YET_VALID = "not_yet_valid"
    INVALID = "invalid"


REJECTION_MESSAGES = {
    CouponRejection.EXPIRED: "만료된 쿠폰입니다.",
    CouponRejection.EXHAUSTED: "쿠폰 사용 한도가 모두 소진되었습니다.",
    CouponRejection.NOT_YET_VALID: "아직 사용 기간이 시작되지 않은 쿠폰입니다.",
    CouponRejection.INVALID: "유효하지 않은 쿠폰 코드입니다.",
}


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round to specified decimal places using banker's rounding."""
    quantize_str = "0." + "0" * places
    return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_EVEN)


def delivery_charge(subtotal: Decimal, policy: DeliveryPolicy) -> Decimal:
    return ZERO if subtotal > policy.free_threshold else policy.flat_fee


def coupon_discount(coupon: Optional[Coupon], subtotal: Decimal) -> Decimal:
    if coupon is None:
        return ZERO
    if coupon.kind == CouponKind.FLAT:
        return coupon.value
    return coupon.value / Decimal(100) * subtotal


def coupon_expiry(coupon: Coupon, tzinfo=None) -> datetime:
    """만료 시각: valid_to 날짜에 end_time을 덮어씁니다. end_time이 없으면 그날 끝까지 유효"""
    return datetime.combine(coupon.valid_to, coupon.end_time or time.max, tzinfo=tzinfo)


def check_coupon(coupon: Coupon, now: datetime) -> Optional[CouponRejection]:
    """쿠폰 사용 가능 여부. 거절 사유 또는 None"""
    if coupon.valid_to is None:
        return CouponRejection.INVALID
    if coupon.valid_from is not None and now.date() < coupon.valid_from:
        return CouponRejection.NOT_YET_VALID
    if now > coupon_expiry(coupon, now.tzinfo):
        return CouponRejection.EXPIRED
    if coupon.remaining_uses <= 0:
        return CouponRejection.EXHAUSTED
    return None


def compute_quote(summary: CartSummary, coupon: Optional[Coupon] = None,
                  policy: Optional[DeliveryPolicy] = None) -> PriceQuote:
    policy = policy or DeliveryPolicy.from_config()
    subtotal = summary.subtotal
    tax = summary.tax
    delivery = delivery_charge(subtotal, policy)
    discount = coupon_discount(coupon, subtotal)
    final_total = max(ZERO, subtotal + tax + delivery - discount)
    return PriceQuote(
        subtotal=round_money(subtotal),
        tax=round_money(tax),
        delivery_charge=round_money(delivery),
        discount=round_money(discount),
        final_total=round_money(final_total),
        coupon_code=coupon.code if coupon else None,
    )


class PricingEngine:
    def __init__(self, catalog: Optional["CatalogService"] = None, policy: Optional[DeliveryPolicy] = None):
        self.catalog = catalog
        self.policy = policy or DeliveryPolicy.from_config()

    def quote(self, summary: CartSummary, coupon: Optional[Coupon] = None) -> PriceQuote:
        return compute_quote(summary, coupon, self.policy)

    def evaluate_coupon(self, coupon: Coupon, now: Optional[datetime] = None) -> Result:
        rejection = check_coupon(coupon, now or datetime.now())
        if rejection is not None:
            logger.info(f"쿠폰 거절: {coupon.code} ({rejection.value})")
            return Result.fail(ErrorKind.BUSINESS, REJECTION_MESSAGES[rejection], data={"reason": rejection})
        return Result.ok(coupon)

    async def apply_coupon(self, code: str, summary: CartSummary, now: Optional[datetime] = None) -> Result:
        """
        쿠폰을 조회/검증하고 할인이 반영된 견적을 반환합니다.

        거절 시 실패 Result의 data에 사유(reason)와 할인 없는 견적(quote)을 담습니다.
        """
        base_quote = self.quote(summary)
        if self.catalog is None:
            raise RuntimeError("쿠폰 조회용 CatalogService가 없습니다")

        lookup = await self.catalog.get_coupon(code)
        if not lookup.success:
            reason = CouponRejection.INVALID if lookup.error == ErrorKind.BUSINESS else None
            return Result.fail(lookup.error, lookup.message, data={"reason": reason, "quote": base_quote})

        try:
            coupon = Coupon.from_dict(lookup.data)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"쿠폰 응답 파싱 실패: {e}")
            return Result.fail(ErrorKind.NETWORK, "쿠폰 정보를 읽을 수 없습니다.",
                               data={"reason": None, "quote": base_quote})

        evaluated = self.evaluate_coupon(coupon, now)
        if not evaluated.success:
            evaluated.data["quote"] = base_quote
            return evaluated

        quote = self.quote(summary, coupon)
        logger.info(f"쿠폰 적용: {coupon.code}, 할인 {quote.discount}")
        return Result.ok(quote, f'쿠폰 "{coupon.code}" 적용: {quote.discount} 할인')
