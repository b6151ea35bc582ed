"""
고객 인증 API 클라이언트
OTP 발송/검증, 회원가입, 로그인, 로그아웃, 프로필 관리
"""

import logging
from datetime import date
from typing import Optional, Dict, Any

from pydantic import BaseModel, EmailStr, Field

from auth_system.token_session import TokenSessionManager, PROFILE_PATH
from utils.errors import ErrorKind, NetworkError, Result, StorefrontError
from utils.gateway import RequestGateway
from utils.validation import build_payload, to_form

logger = logging.getLogger(__name__)

PHONE_PATTERN = r"^[0-9]{10}$"


class OtpRequest(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)

class OtpVerification(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    otp: str = Field(min_length=1)
    name: Optional[str] = None
    email: Optional[EmailStr] = None

class CustomerRegistration(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=6)
    dob: Optional[date] = None
    gender: Optional[str] = None

class CustomerLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    dob: Optional[date] = None
    gender: Optional[str] = None

class PasswordChange(BaseModel):
    oldPassword: str = Field(min_length=1)
    newPassword: str = Field(min_length=6)


class AuthService:
    """인증 엔드포인트 묶음. 세션 수립/해제는 TokenSessionManager에 위임"""

    def __init__(self, gateway: RequestGateway, session_manager: TokenSessionManager):
        self.gateway = gateway
        self.session_manager = session_manager

    async def _establish_from(self, path: str, payload: BaseModel) -> Result:
        try:
            envelope = await self.gateway.send("POST", path, to_form(payload))
            data = envelope.data if isinstance(envelope.data, dict) else {}
            token = data.get("accessToken")
            if not token:
                raise NetworkError("인증 응답에 accessToken이 없습니다")
        except StorefrontError as e:
            logger.warning(f"인증 실패 ({path}): {e.message}")
            return Result.from_error(e)

        self.session_manager.establish(token, data.get("user"))
        return Result.ok(data, envelope.message)

    async def send_otp(self, phone: str) -> Result:
        try:
            payload = build_payload(OtpRequest, phone=phone)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self.gateway.request("POST", "/auth/send-otp", to_form(payload))

    async def verify_otp(self, phone: str, otp: str, name: Optional[str] = None,
                         email: Optional[str] = None) -> Result:
        try:
            payload = build_payload(OtpVerification, phone=phone, otp=otp, name=name, email=email)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self._establish_from("/auth/verify-otp", payload)

    async def register(self, **fields: Any) -> Result:
        try:
            payload = build_payload(CustomerRegistration, **fields)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self._establish_from("/auth/register", payload)

    async def login(self, email: str, password: str) -> Result:
        try:
            payload = build_payload(CustomerLogin, email=email, password=password)
        except StorefrontError as e:
            return Result.from_error(e)
        result = await self._establish_from("/auth/login", payload)
        if result.success:
            logger.info("로그인 성공")
        return result

    async def logout(self) -> Result:
        """서버 로그아웃 결과와 무관하게 로컬 세션은 항상 정리합니다."""
        result = await self.gateway.request("POST", "/auth/logout")
        if not result.success:
            logger.warning(f"로그아웃 API 실패 (로컬 세션은 정리): {result.message}")
        self.session_manager.teardown()
        return Result.ok(message=result.message) if result.success else result

    async def get_profile(self) -> Result:
        result = await self.gateway.request("GET", PROFILE_PATH)
        if result.success and isinstance(result.data, dict):
            self.session_manager.update_profile(result.data)
        return result

    async def update_profile(self, **fields: Any) -> Result:
        try:
            payload = build_payload(ProfileUpdate, **fields)
        except StorefrontError as e:
            return Result.from_error(e)
        result = await self.gateway.request("PATCH", PROFILE_PATH, to_form(payload))
        if result.success and isinstance(result.data, dict):
            self.session_manager.update_profile(result.data)
        return result

    async def change_password(self, current_password: str, new_password: str,
                              confirm_password: Optional[str] = None) -> Result:
        if confirm_password is not None and confirm_password != new_password:
            return Result.fail(ErrorKind.VALIDATION, "새 비밀번호가 일치하지 않습니다.")
        try:
            payload = build_payload(PasswordChange, oldPassword=current_password, newPassword=new_password)
        except StorefrontError as e:
            return Result.from_error(e)
        return await self.gateway.request("POST", "/auth/change-password", to_form(payload))

    def current_customer(self) -> Optional[Dict[str, Any]]:
        return self.session_manager.customer
