import asyncio
import logging
from typing import Optional

from config import config, Config, GatewaySettings
from utils.logging_config import setup_logging
from utils.gateway import RequestGateway, Transport
from auth_system.token_store import TokenStore
from auth_system.token_session import TokenSessionManager
from auth_api import AuthService
from catalog_api import CatalogService
from address_api import AddressService
from orders_api import OrderService
from nodes.cart_sync import CartSynchronizer
from nodes.pricing import PricingEngine, DeliveryPolicy
from nodes.checkout import CheckoutOrchestrator

logger = logging.getLogger(__name__)


class StorefrontApp:
    """
    스토어프론트 클라이언트 조립 지점

    설정 → 토큰 저장소 → 세션 관리자 → 게이트웨이 → 서비스 순으로 한 번만 생성하고,
    `async with` 구간 동안 HTTP 세션과 토큰 갱신 스케줄러를 소유합니다.
    """

    def __init__(self, cfg: Optional[Config] = None, store: Optional[TokenStore] = None,
                 transport: Optional[Transport] = None, policy: Optional[DeliveryPolicy] = None):
        self.config = cfg or config
        self.store = store or TokenStore(self.config.TOKEN_STORE_PATH, self.config.TOKEN_KEY)
        self.session_manager = TokenSessionManager(self.store)
        self.gateway = RequestGateway(GatewaySettings.from_config(self.config), self.session_manager, transport)

        self.auth = AuthService(self.gateway, self.session_manager)
        self.catalog = CatalogService(self.gateway)
        self.addresses = AddressService(self.gateway)
        self.orders = OrderService(self.gateway)
        self.cart = CartSynchronizer(self.gateway)
        self.pricing = PricingEngine(self.catalog, policy)
        self.checkout = CheckoutOrchestrator(self.session_manager, self.cart, self.pricing, self.orders)

        # 로그아웃/세션 만료 시 장바구니 미러 초기화
        self.session_manager.add_teardown_listener(self.cart.reset)
        # 로그인/OTP 인증/가입으로 세션이 생기면 서버 장바구니를 불러옴
        self.session_manager.add_establish_listener(self._schedule_cart_load)
        self.cart_load: Optional[asyncio.Task] = None

    def _schedule_cart_load(self) -> None:
        if self.cart_load is not None and not self.cart_load.done():
            return
        self.cart_load = asyncio.ensure_future(self._load_cart())

    async def _load_cart(self) -> None:
        refreshed = await self.cart.refresh()
        if not refreshed.success:
            logger.warning(f"로그인 후 장바구니 조회 실패: {refreshed.message}")

    async def start(self) -> None:
        logger.info(f"스토어프론트 클라이언트 시작: {self.gateway.settings.base_url}")
        if await self.session_manager.restore():
            refreshed = await self.cart.refresh()
            if not refreshed.success:
                logger.warning(f"시작 시 장바구니 조회 실패: {refreshed.message}")
        self.session_manager.schedule_renewal(self.config.RENEWAL_INTERVAL_HOURS)

    async def close(self) -> None:
        if self.cart_load is not None and not self.cart_load.done():
            self.cart_load.cancel()
        await self.session_manager.stop_renewal()
        await self.gateway.close()
        logger.info("스토어프론트 클라이언트 종료")

    async def __aenter__(self) -> "StorefrontApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def main() -> None:
    setup_logging()
    async with StorefrontApp() as app:
        if not app.session_manager.is_authenticated:
            logger.info("로그인되지 않은 상태입니다")
            return
        customer = app.session_manager.customer or {}
        summary = app.cart.summary
        logger.info(f"고객: {customer.get('name')}, 장바구니 {app.cart.count}개, 합계 {summary.total}")


if __name__ == "__main__":
    asyncio.run(main())
