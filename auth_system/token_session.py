"""
액세스 토큰 세션 관리

토큰 값과 영속 저장, 만료 시 투명한 갱신을 담당합니다.
- 갱신은 single-flight: 동시에 여러 요청이 401을 받아도 refresh 호출은 한 번만 나가고,
  나머지 요청은 같은 결과를 기다린 뒤 재시도합니다.
- 갱신 실패 시 메모리/디스크의 세션 상태를 모두 정리합니다.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

import jwt

from config import config
from graph_interfaces import Session
from auth_system.token_store import TokenStore
from utils.errors import NetworkError, StorefrontError
from utils.gateway import REFRESH_PATH
from utils.logging_config import mask_token

if TYPE_CHECKING:
    from utils.gateway import RequestGateway

logger = logging.getLogger(__name__)

PROFILE_PATH = "/profile"


def decode_expiry(token: str) -> Optional[datetime]:
    """JWT exp 클레임을 읽습니다. 서명 검증은 서버 책임이므로 하지 않습니다."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(int(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class TokenSessionManager:
    """토큰 수명주기 관리자 (프로세스당 하나 생성해서 참조로 전달)"""

    def __init__(self, store: Optional[TokenStore] = None):
        self.store = store or TokenStore()
        self.session = Session()
        self._gateway: Optional["RequestGateway"] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._renewal_task: Optional[asyncio.Task] = None
        self._teardown_listeners: List[Callable[[], None]] = []
        self._establish_listeners: List[Callable[[], None]] = []

    def attach(self, gateway: "RequestGateway") -> None:
        self._gateway = gateway

    def add_teardown_listener(self, listener: Callable[[], None]) -> None:
        self._teardown_listeners.append(listener)

    def add_establish_listener(self, listener: Callable[[], None]) -> None:
        """비로그인 상태에서 새 세션이 수립될 때 호출 (갱신으로 인한 토큰 교체는 제외)"""
        self._establish_listeners.append(listener)

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    @property
    def customer(self) -> Optional[Dict[str, Any]]:
        return self.session.customer

    def acquire(self) -> Optional[str]:
        """네트워크 호출 없이 현재 보유한 토큰을 반환"""
        return self.session.access_token

    def establish(self, token: str, profile: Optional[Dict[str, Any]] = None) -> None:
        signed_in = not self.session.access_token
        self.session = Session(access_token=token, customer=profile, expires_at=decode_expiry(token))
        self.store.save(token)
        logger.info(f"세션 수립: token={mask_token(token)}, 만료={self.session.expires_at}")
        if signed_in:
            for listener in self._establish_listeners:
                listener()

    def update_profile(self, profile: Dict[str, Any]) -> None:
        self.session.customer = profile

    def teardown(self) -> None:
        """네트워크 결과와 무관하게 메모리/영속 토큰 상태를 정리"""
        had_token = bool(self.session.access_token)
        self.session = Session()
        try:
            self.store.clear()
        except OSError as e:
            logger.error(f"토큰 저장소 정리 실패: {e}")
        if had_token:
            logger.info("세션 해제 완료")
        for listener in self._teardown_listeners:
            listener()

    async def refresh(self, stale_token: Optional[str] = None) -> bool:
        """
        현재 세션을 새 토큰으로 교환합니다. (single-flight)

        Args:
            stale_token: 401을 받은 요청이 사용한 토큰. 이미 다른 토큰으로 교체됐다면
                         갱신이 끝난 것으로 보고 네트워크 호출 없이 성공을 반환합니다.
        """
        current = self.session.access_token
        if stale_token and current and current != stale_token and self.session.is_authenticated:
            return True

        if stale_token and not current:
            # 직전 갱신이 실패해 세션이 이미 정리됨
            logger.info("세션 해제 이후의 401: 갱신 생략")
            return False

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> bool:
        if self._gateway is None:
            raise RuntimeError("RequestGateway가 연결되지 않았습니다")

        logger.info("토큰 갱신 시작")
        try:
            envelope = await self._gateway.send("POST", REFRESH_PATH, retry_on_auth=False)
            data = envelope.data if isinstance(envelope.data, dict) else {}
            token = data.get("accessToken")
            if not token:
                raise NetworkError("갱신 응답에 accessToken이 없습니다")
        except StorefrontError as e:
            logger.warning(f"토큰 갱신 실패, 세션 해제: {e.message}")
            self.teardown()
            return False

        self.establish(token, data.get("user") or self.session.customer)
        logger.info("토큰 갱신 완료")
        return True

    async def restore(self) -> bool:
        """저장된 토큰으로 세션을 복원하고 프로필을 조회합니다. 실패하면 세션을 정리합니다."""
        token = self.store.load()
        if not token:
            logger.info("저장된 토큰 없음: 비로그인 상태로 시작")
            return False

        self.session = Session(access_token=token, expires_at=decode_expiry(token))
        try:
            envelope = await self._gateway.send("GET", PROFILE_PATH)
        except StorefrontError as e:
            logger.warning(f"세션 복원 실패: {e.message}")
            self.teardown()
            return False

        self.session.customer = envelope.data
        logger.info("저장된 토큰으로 세션 복원 완료")
        return True

    def schedule_renewal(self, interval_hours: Optional[float] = None) -> None:
        """
        주기적 토큰 갱신 (선택적 사용)

        Args:
            interval_hours: 갱신 주기 (시간)
        """
        if self._renewal_task is not None and not self._renewal_task.done():
            return

        interval = float(interval_hours if interval_hours is not None else config.RENEWAL_INTERVAL_HOURS) * 3600

        async def renewal_worker():
            while True:
                await asyncio.sleep(interval)
                if not self.session.access_token:
                    continue
                try:
                    renewed = await self.refresh()
                    logger.info(f"주기적 토큰 갱신 {'완료' if renewed else '실패'}")
                except Exception as e:
                    logger.error(f"주기적 토큰 갱신 중 오류: {e}")

        self._renewal_task = asyncio.ensure_future(renewal_worker())
        logger.info(f"토큰 갱신 스케줄러 시작: {interval / 3600:g}시간 주기")

    async def stop_renewal(self) -> None:
        task, self._renewal_task = self._renewal_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
