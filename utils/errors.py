"""
스토어프론트 클라이언트 오류 분류

- ValidationError: 네트워크 호출 전 로컬 검증 실패
- AuthError: 401 응답 (단일 갱신/재시도 이후에도 실패한 경우)
- BusinessError: 서버가 구조화된 실패를 응답 (재고 부족, 쿠폰 만료 등)
- NetworkError: 전송 실패 또는 잘못된 응답

게이트웨이 내부에서는 예외로 전파되고, 각 서비스의 공개 메서드는 Result로 변환해서 반환합니다.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

GENERIC_NETWORK_MESSAGE = "네트워크 오류가 발생했습니다. 잠시 후 다시 시도해주세요."
SESSION_EXPIRED_MESSAGE = "세션이 만료되었습니다. 다시 로그인해주세요."


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    BUSINESS = "business"
    NETWORK = "network"


class StorefrontError(Exception):
    """모든 클라이언트 오류의 기본 클래스"""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        self.message = message
        self.status = status
        self.data = data
        super().__init__(message)


class ValidationError(StorefrontError):
    kind = ErrorKind.VALIDATION


class AuthError(StorefrontError):
    kind = ErrorKind.AUTH

    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE, status: Optional[int] = 401, data: Any = None):
        super().__init__(message, status, data)


class BusinessError(StorefrontError):
    kind = ErrorKind.BUSINESS


class NetworkError(StorefrontError):
    kind = ErrorKind.NETWORK

    def __init__(self, message: str = GENERIC_NETWORK_MESSAGE, status: Optional[int] = None, data: Any = None):
        super().__init__(message, status, data)


@dataclass
class Result:
    """모든 핵심 연산이 반환하는 태그된 결과 (success | error(kind, message))"""

    success: bool
    data: Any = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    warning: bool = False

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "Result":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, data: Any = None, warning: bool = False) -> "Result":
        return cls(success=False, data=data, error=kind, message=message, warning=warning)

    @classmethod
    def from_error(cls, exc: StorefrontError) -> "Result":
        return cls.fail(exc.kind, exc.message, data=exc.data)
