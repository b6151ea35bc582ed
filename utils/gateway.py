"""
고객 API 요청 게이트웨이

모든 네트워크 호출의 단일 진입점입니다.
- 토큰이 있으면 Authorization: Bearer 헤더를 붙입니다.
- POST/PUT/PATCH 본문은 x-www-form-urlencoded 형식으로 직렬화합니다.
- 401 응답을 받으면 TokenSessionManager.refresh()에 위임한 뒤 원 요청을 정확히 한 번 재시도합니다.
- 그 외 실패는 분류(errors.py)만 해서 그대로 호출자에게 전달합니다.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple, TYPE_CHECKING
from urllib.parse import urlencode

import aiohttp
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from config import GatewaySettings
from utils.errors import AuthError, BusinessError, NetworkError, Result, StorefrontError
from utils.logging_config import mask_token

if TYPE_CHECKING:
    from auth_system.token_session import TokenSessionManager

logger = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh-token"
FORM_METHODS = ("POST", "PUT", "PATCH")


class ApiEnvelope(BaseModel):
    success: bool = False
    data: Any = None
    message: Optional[str] = None


@dataclass(frozen=True)
class RequestContext:
    """요청 단위 컨텍스트 (토큰은 전송 시점의 스냅샷)"""
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    token: Optional[str] = None


@dataclass
class TransportResponse:
    status: int
    payload: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class Transport(Protocol):
    async def __call__(self, method: str, url: str, *, headers: Dict[str, str],
                       data: Optional[bytes], params: Optional[List[Tuple[str, str]]]) -> TransportResponse:
        ...


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def flatten_form(data: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """중첩 dict/list를 qs 스타일 대괄호 키로 평탄화합니다. (cartSummary[subtotal]=...)"""
    pairs: List[Tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            pairs.extend(flatten_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, element in enumerate(value):
                element_name = f"{name}[{index}]"
                if isinstance(element, dict):
                    pairs.extend(flatten_form(element, element_name))
                else:
                    pairs.append((element_name, _scalar(element)))
        else:
            pairs.append((name, _scalar(value)))
    return pairs


def encode_form(data: Dict[str, Any]) -> bytes:
    return urlencode(flatten_form(data)).encode("utf-8")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"직렬화할 수 없는 값: {type(value).__name__}")


def encode_query(query: Optional[Dict[str, Any]]) -> Optional[List[Tuple[str, str]]]:
    if not query:
        return None
    params = [(k, _scalar(v)) for k, v in query.items() if v is not None]
    return params or None


class AiohttpTransport:
    """aiohttp ClientSession 기반 기본 전송 계층"""

    def __init__(self, timeout: float = 15.0):
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __call__(self, method: str, url: str, *, headers: Dict[str, str],
                       data: Optional[bytes], params: Optional[List[Tuple[str, str]]]) -> TransportResponse:
        session = await self._ensure_session()
        try:
            async with session.request(method, url, headers=headers, data=data, params=params) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                return TransportResponse(status=response.status, payload=payload, headers=dict(response.headers))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"API 전송 실패: {method} {url} - {e}")
            raise NetworkError() from e


class RequestGateway:
    """토큰 부착, 본문 직렬화, 401 단일 갱신/재시도를 담당하는 요청 게이트웨이"""

    def __init__(self, settings: GatewaySettings, session_manager: "TokenSessionManager",
                 transport: Optional[Transport] = None):
        self.settings = settings
        self.session_manager = session_manager
        self.transport = transport or AiohttpTransport(timeout=settings.timeout)
        session_manager.attach(self)

    async def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    def _build(self, ctx: RequestContext) -> Tuple[str, Dict[str, str], Optional[bytes], Optional[List[Tuple[str, str]]]]:
        url = f"{self.settings.base_url}/{ctx.path.lstrip('/')}"
        headers: Dict[str, str] = {"Accept": "application/json"}
        if ctx.token:
            headers["Authorization"] = f"Bearer {ctx.token}"

        data: Optional[bytes] = None
        if ctx.method in FORM_METHODS:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            if ctx.body:
                data = encode_form(ctx.body)
        elif ctx.body:
            headers["Content-Type"] = "application/json"
            data = json.dumps(ctx.body, default=_json_default).encode("utf-8")

        return url, headers, data, encode_query(ctx.query)

    async def _dispatch(self, ctx: RequestContext) -> TransportResponse:
        url, headers, data, params = self._build(ctx)
        logger.debug(f"API 요청: {ctx.method} {ctx.path} (token={mask_token(ctx.token)})")
        return await self.transport(ctx.method, url, headers=headers, data=data, params=params)

    async def send(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                   query: Optional[Dict[str, Any]] = None, *, retry_on_auth: bool = True) -> ApiEnvelope:
        """
        요청을 전송하고 성공 응답 envelope을 반환합니다.

        Raises:
            AuthError: 갱신 후 재시도까지 401인 경우 (세션은 해제됨)
            BusinessError: 서버가 구조화된 실패를 응답한 경우
            NetworkError: 전송 실패, 5xx, 잘못된 응답 본문
        """
        ctx = RequestContext(method=method.upper(), path=path, body=body, query=query,
                             token=self.session_manager.acquire())
        response = await self._dispatch(ctx)

        if response.status == 401 and retry_on_auth and path != REFRESH_PATH:
            logger.info(f"401 응답 수신, 토큰 갱신 대기: {ctx.method} {path}")
            refreshed = await self.session_manager.refresh(stale_token=ctx.token)
            if not refreshed:
                raise AuthError()

            retry_ctx = replace(ctx, token=self.session_manager.acquire())
            response = await self._dispatch(retry_ctx)
            if response.status == 401:
                logger.warning(f"재시도 후에도 401, 세션 해제: {ctx.method} {path}")
                self.session_manager.teardown()
                raise AuthError()

        return self._interpret(ctx, response)

    def _interpret(self, ctx: RequestContext, response: TransportResponse) -> ApiEnvelope:
        if response.status == 401:
            raise AuthError()

        if response.status >= 500:
            logger.error(f"서버 오류 {response.status}: {ctx.method} {ctx.path}")
            raise NetworkError(status=response.status)

        if not isinstance(response.payload, dict):
            logger.error(f"잘못된 응답 본문: {ctx.method} {ctx.path} (status={response.status})")
            raise NetworkError(status=response.status)

        try:
            envelope = ApiEnvelope.model_validate(response.payload)
        except PydanticValidationError as e:
            logger.error(f"응답 envelope 검증 실패: {ctx.method} {ctx.path} - {e}")
            raise NetworkError(status=response.status) from e

        if response.status >= 400 or not envelope.success:
            message = envelope.message or "요청을 처리할 수 없습니다."
            logger.warning(f"비즈니스 오류 {response.status}: {ctx.method} {ctx.path} - {message}")
            raise BusinessError(message, status=response.status, data=envelope.data)

        return envelope

    async def request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                      query: Optional[Dict[str, Any]] = None) -> Result:
        """send()의 결과를 Result로 감싸서 반환 (예외를 호출자에게 남기지 않음)"""
        try:
            envelope = await self.send(method, path, body, query)
        except StorefrontError as e:
            return Result.from_error(e)
        return Result.ok(envelope.data, envelope.message)
