import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import jwt
import pytest

from config import GatewaySettings
from auth_system.token_store import TokenStore
from auth_system.token_session import TokenSessionManager
from utils.gateway import RequestGateway, TransportResponse
from nodes.pricing import DeliveryPolicy

BASE_URL = "http://storefront.test/api/customer"


def make_token(subject: str = "1", expires_in: Optional[timedelta] = timedelta(hours=1)) -> str:
    claims: Dict[str, Any] = {"sub": subject}
    if expires_in is not None:
        claims["exp"] = int((datetime.now(timezone.utc) + expires_in).timestamp())
    return jwt.encode(claims, "storefront-test-signing-key-0123456789", algorithm="HS256")


def ok(data: Any = None, message: Optional[str] = None, status: int = 200) -> Tuple[int, Dict[str, Any]]:
    return status, {"success": True, "data": data, "message": message}


def fail(message: str, status: int = 400, data: Any = None) -> Tuple[int, Dict[str, Any]]:
    return status, {"success": False, "data": data, "message": message}


UNAUTHORIZED = (401, {"success": False, "message": "Unauthorized"})


@dataclass
class Call:
    method: str
    path: str
    headers: Dict[str, str]
    data: Optional[bytes] = None
    params: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def token(self) -> Optional[str]:
        header = self.headers.get("Authorization")
        return header[len("Bearer "):] if header else None

    @property
    def form(self) -> Dict[str, str]:
        return dict(parse_qsl(self.data.decode("utf-8"), keep_blank_values=True)) if self.data else {}

    @property
    def json(self) -> Any:
        return json.loads(self.data) if self.data else None


class FakeTransport:
    """
    (method, path)별로 응답을 등록하는 인메모리 전송 계층

    응답은 (status, payload) 튜플, Call을 받아 튜플을 반환하는 함수, 또는 예외입니다.
    여러 개를 등록하면 순서대로 소비하고 마지막 응답은 계속 재사용합니다.
    """

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.calls: List[Call] = []
        self.routes: Dict[Tuple[str, str], list] = {}
        self.gates: Dict[Tuple[str, str], asyncio.Event] = {}
        self.closed = False

    def add(self, method: str, path: str, *responses) -> None:
        self.routes[(method.upper(), path)] = list(responses)

    def hold(self, method: str, path: str) -> asyncio.Event:
        """set()될 때까지 해당 요청의 응답을 보류합니다."""
        gate = self.gates[(method.upper(), path)] = asyncio.Event()
        return gate

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method.upper() and c.path == path]

    async def close(self) -> None:
        self.closed = True

    async def __call__(self, method, url, *, headers, data, params):
        call = Call(method, url[len(self.base_url):], dict(headers), data, list(params or []))
        self.calls.append(call)
        await asyncio.sleep(0)
        gate = self.gates.get((call.method, call.path))
        if gate is not None:
            await gate.wait()

        queue = self.routes.get((call.method, call.path))
        if not queue:
            return TransportResponse(404, {"success": False, "message": f"no route {call.method} {call.path}"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            response = response(call)
        if isinstance(response, Exception):
            raise response
        status, payload = response
        return TransportResponse(status, payload)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(tmp_path / "session.json", "customerToken")


@pytest.fixture
def session_manager(store) -> TokenSessionManager:
    return TokenSessionManager(store)


@pytest.fixture
def gateway(session_manager, transport) -> RequestGateway:
    return RequestGateway(GatewaySettings(base_url=BASE_URL), session_manager, transport)


@pytest.fixture
def logged_in(session_manager):
    token = make_token()
    session_manager.establish(token, {"id": 1, "name": "Asha"})
    return token


@pytest.fixture
def policy() -> DeliveryPolicy:
    return DeliveryPolicy(free_threshold=Decimal("500"), flat_fee=Decimal("50"))


def cart_payload(*lines: Dict[str, Any], subtotal="0", tax="0") -> Dict[str, Any]:
    total = Decimal(subtotal) + Decimal(tax)
    return {
        "items": list(lines),
        "summary": {"totalItems": sum(int(l["quantity"]) for l in lines),
                    "subtotal": subtotal, "tax": tax, "total": str(total)},
    }


def cart_line(variant_id: str, quantity: int, stock: int, price: str = "100.00", name: str = "Basmati Rice"):
    return {"product_variant_id": variant_id, "product_name": name, "variant_name": "1kg",
            "price": price, "quantity": quantity, "stock": stock}
