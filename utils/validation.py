"""요청 payload 로컬 검증 (네트워크 호출 전)"""

from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from utils.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def build_payload(model: Type[ModelT], **fields: Any) -> ModelT:
    """pydantic 모델로 입력을 검증하고, 실패하면 ValidationError를 발생시킵니다."""
    try:
        return model(**fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        raise ValidationError(message, data={"errors": e.errors(include_url=False)}) from e


def to_form(payload: BaseModel) -> Dict[str, Any]:
    """None 필드는 전송하지 않습니다."""
    return payload.model_dump(exclude_none=True, by_alias=True)
