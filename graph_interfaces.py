from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """서버 응답의 금액 값을 Decimal로 변환합니다."""
    if value is None or value == "":
        return Decimal(default)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)
    # NaN, Infinity 는 금액이 아님
    if not amount.is_finite():
        return Decimal(default)
    return amount


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return date.fromisoformat(text[:10])


def _parse_time(value: Any) -> Optional[time]:
    if not value:
        return None
    if isinstance(value, time):
        return value
    parts = str(value).split(":")
    return time(hour=int(parts[0]), minute=int(parts[1]) if len(parts) > 1 else 0)


@dataclass
class Session:
    access_token: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and not self.is_expired()


@dataclass
class CartItem:
    variant_id: str
    product_name: str = ""
    variant_name: str = ""
    unit_price: Decimal = Decimal("0")
    quantity: int = 0
    available_stock: int = 0

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        return cls(
            variant_id=str(data.get("product_variant_id") or data.get("variant_id") or ""),
            product_name=data.get("product_name") or "",
            variant_name=data.get("variant_name") or "",
            unit_price=to_decimal(data.get("price", data.get("unit_price"))),
            quantity=_to_int(data.get("quantity")),
            available_stock=_to_int(data.get("stock", data.get("available_stock"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_name": self.variant_name,
            "price": str(self.unit_price),
            "quantity": self.quantity,
            "stock": self.available_stock,
        }


@dataclass
class CartSummary:
    total_items: int = 0
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CartSummary":
        data = data or {}
        return cls(
            total_items=_to_int(data.get("totalItems", data.get("total_items"))),
            subtotal=to_decimal(data.get("subtotal")),
            tax=to_decimal(data.get("tax")),
            total=to_decimal(data.get("total")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
        }


@dataclass
class CartState:
    items: List[CartItem] = field(default_factory=list)
    count: int = 0
    summary: CartSummary = field(default_factory=CartSummary)

    def find(self, variant_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.variant_id == str(variant_id):
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return not self.items


class CouponKind(str, Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


@dataclass
class Coupon:
    code: str
    kind: CouponKind
    value: Decimal
    valid_to: date
    valid_from: Optional[date] = None
    end_time: Optional[time] = None
    remaining_uses: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coupon":
        flat = to_decimal(data.get("flat_discount"))
        percentage = to_decimal(data.get("percentage_discount"))
        # 둘 다 내려오면 0이 아닌 쪽을 사용 (flat 우선)
        if flat > 0:
            kind, value = CouponKind.FLAT, flat
        elif percentage > 0:
            kind, value = CouponKind.PERCENTAGE, percentage
        else:
            kind = CouponKind(data.get("kind", CouponKind.FLAT.value))
            value = to_decimal(data.get("value"))
        return cls(
            code=str(data.get("code") or ""),
            kind=kind,
            value=value,
            valid_to=_parse_date(data.get("valid_to_date") or data.get("valid_to")),
            valid_from=_parse_date(data.get("valid_from_date") or data.get("valid_from")),
            end_time=_parse_time(data.get("end_time")),
            remaining_uses=_to_int(data.get("quantity", data.get("remaining_uses"))),
        )


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        try:
            return cls(str(value or "pending").lower())
        except ValueError:
            return cls.PENDING

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)

PAYMENT_MODE_COD = "cod"


@dataclass
class Order:
    order_id: Optional[str] = None
    address_id: Optional[str] = None
    items: List[CartItem] = field(default_factory=list)
    payment_mode: str = PAYMENT_MODE_COD
    delivery_charge: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    coupon_code: Optional[str] = None
    final_total: Decimal = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING

    @classmethod
    def from_dict(cls, data: Dict[str, Any], items: Optional[List[Dict[str, Any]]] = None) -> "Order":
        order_id = data.get("id", data.get("order_id"))
        return cls(
            order_id=str(order_id) if order_id is not None else None,
            address_id=str(data["address_id"]) if data.get("address_id") is not None else None,
            items=[CartItem.from_dict(i) for i in (items or data.get("items") or [])],
            payment_mode=data.get("payment_mode") or PAYMENT_MODE_COD,
            delivery_charge=to_decimal(data.get("delivery_charge")),
            discount=to_decimal(data.get("discount")),
            coupon_code=data.get("coupon_code") or data.get("couponCode"),
            final_total=to_decimal(data.get("final_total", data.get("total_amount"))),
            status=OrderStatus.parse(data.get("delivery_status") or data.get("status")),
        )

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATUSES


class CheckoutStage(str, Enum):
    ADDRESS_REQUIRED = "address_required"
    STOCK_VALIDATING = "stock_validating"
    READY_TO_SUBMIT = "ready_to_submit"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CheckoutState:
    address_id: Optional[str] = None
    coupon_code: Optional[str] = None
    payment_mode: str = PAYMENT_MODE_COD
    stage: CheckoutStage = CheckoutStage.ADDRESS_REQUIRED
    redirect: Optional[str] = None

    summary: Optional[CartSummary] = None
    quote: Any = None
    invalid_items: List[Dict[str, Any]] = field(default_factory=list)

    order_id: Optional[str] = None
    order: Optional[Order] = None

    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    history: List[str] = field(default_factory=list)
