"""배송지 CRUD 및 기본 배송지 API 클라이언트"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from utils.errors import Result, StorefrontError
from utils.gateway import RequestGateway
from utils.validation import build_payload, to_form

logger = logging.getLogger(__name__)


class AddressForm(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(pattern=r"^[0-9]{6}$")
    country: str = Field(default="India", min_length=1)
    is_default: bool = False


def pick_default(addresses: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """목록에서 기본 배송지를 골라냅니다 (자동 선택용)"""
    for address in addresses or []:
        if address.get("is_default"):
            return address
    return None


class AddressService:
    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    async def list(self) -> Result:
        result = await self.gateway.request("GET", "/addresses")
        if result.success and result.data is None:
            result.data = []
        return result

    async def get(self, address_id) -> Result:
        return await self.gateway.request("GET", f"/addresses/{address_id}")

    async def create(self, **fields: Any) -> Result:
        try:
            payload = build_payload(AddressForm, **fields)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self.gateway.request("POST", "/addresses", to_form(payload))

    async def update(self, address_id, **fields: Any) -> Result:
        try:
            payload = build_payload(AddressForm, **fields)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self.gateway.request("PATCH", f"/addresses/{address_id}", to_form(payload))

    async def delete(self, address_id) -> Result:
        return await self.gateway.request("DELETE", f"/addresses/{address_id}")

    async def get_default(self) -> Result:
        return await self.gateway.request("GET", "/addresses/default")

    async def set_default(self, address_id) -> Result:
        result = await self.gateway.request("PATCH", f"/addresses/set-default/{address_id}")
        if result.success:
            logger.info(f"기본 배송지 변경: {address_id}")
        return result

    async def select_for_checkout(self) -> Optional[str]:
        """결제 화면 진입 시 기본 배송지 id를 자동 선택합니다. 없으면 None"""
        result = await self.list()
        if not result.success:
            return None
        default = pick_default(result.data)
        return str(default["id"]) if default and default.get("id") is not None else None
