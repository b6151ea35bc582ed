"""
액세스 토큰 영속 저장소

브라우저 localStorage의 단일 키('customerToken')에 해당하는 JSON 파일입니다.
파일이나 키가 없으면 비로그인 상태로 간주합니다.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from config import config

logger = logging.getLogger(__name__)


class TokenStore:
    """토큰을 단일 키로 파일에 저장/조회/삭제"""

    def __init__(self, path: Union[str, Path, None] = None, key: Optional[str] = None):
        self.path = Path(path or config.TOKEN_STORE_PATH).expanduser()
        self.key = key or config.TOKEN_KEY

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"토큰 저장소 읽기 실패, 비로그인 상태로 처리: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".session_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def load(self) -> Optional[str]:
        token = self._read_all().get(self.key)
        return token or None

    def save(self, token: str) -> None:
        data = self._read_all()
        data[self.key] = token
        self._write_all(data)

    def clear(self) -> None:
        data = self._read_all()
        if self.key not in data:
            return
        del data[self.key]
        self._write_all(data)
