"""상품/카테고리/서브카테고리 조회와 쿠폰 조회 API 클라이언트"""

import logging
from urllib.parse import quote
from typing import Optional

from utils.errors import ErrorKind, Result
from utils.gateway import RequestGateway

logger = logging.getLogger(__name__)


def _page_query(page: Optional[int], limit: Optional[int]) -> dict:
    return {"page": page, "limit": limit}


class CatalogService:
    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    # products
    async def get_products(self) -> Result:
        return await self.gateway.request("GET", "/products")

    async def get_paginated_products(self, page: Optional[int] = None, limit: Optional[int] = None) -> Result:
        return await self.gateway.request("GET", "/products/paginated", query=_page_query(page, limit))

    async def get_product(self, product_id) -> Result:
        return await self.gateway.request("GET", f"/products/{product_id}")

    async def get_variants(self, product_id) -> Result:
        return await self.gateway.request("GET", f"/products/variant/{product_id}")

    # categories
    async def get_categories(self) -> Result:
        return await self.gateway.request("GET", "/categories")

    async def get_category(self, category_id) -> Result:
        return await self.gateway.request("GET", "/categories/category", query={"id": category_id})

    async def get_paginated_categories(self, page: Optional[int] = None, limit: Optional[int] = None) -> Result:
        return await self.gateway.request("GET", "/categories/paginated", query=_page_query(page, limit))

    async def get_subcategories_by_category(self, category_id) -> Result:
        return await self.gateway.request("GET", f"/categories/subcategories/{category_id}")

    async def get_products_by_category(self, category_id) -> Result:
        return await self.gateway.request("GET", f"/categories/products/{category_id}")

    # subcategories
    async def get_subcategories(self) -> Result:
        return await self.gateway.request("GET", "/subcategories")

    async def get_paginated_subcategories(self, page: Optional[int] = None, limit: Optional[int] = None) -> Result:
        return await self.gateway.request("GET", "/subcategories/paginated", query=_page_query(page, limit))

    async def get_products_by_subcategory(self, subcategory_id) -> Result:
        return await self.gateway.request("GET", f"/subcategories/products/{subcategory_id}")

    async def browse(self, category_id=None, subcategory_id=None) -> Result:
        """필터 우선순위: 카테고리 > 서브카테고리 > 전체"""
        if category_id:
            return await self.get_products_by_category(category_id)
        if subcategory_id:
            return await self.get_products_by_subcategory(subcategory_id)
        return await self.get_products()

    # coupons
    async def get_coupon(self, code: str) -> Result:
        code = (code or "").strip()
        if not code:
            return Result.fail(ErrorKind.VALIDATION, "쿠폰 코드를 입력해주세요.")
        result = await self.gateway.request("GET", f"/coupons/{quote(code, safe='')}")
        if result.success and not result.data:
            logger.info(f"존재하지 않는 쿠폰: {code}")
            return Result.fail(ErrorKind.BUSINESS, "유효하지 않은 쿠폰 코드입니다.")
        return result
