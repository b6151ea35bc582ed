import logging
import sys
from typing import IO, Optional
from config import config

# 요청 단위 로그가 많은 라이브러리 로거
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio", "langgraph")


def setup_logging(level: Optional[str] = None, format_string: Optional[str] = None,
                  stream: Optional[IO[str]] = None) -> None:
    log_level = level or config.LOG_LEVEL
    log_format = format_string or config.LOG_FORMAT

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(stream or sys.stdout)
    stream_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stream_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).info(f"로깅 설정 완료: level={log_level}, API={config.API_BASE_URL}")


def mask_token(token: Optional[str]) -> str:
    """로그 출력용 토큰 마스킹"""
    if not token:
        return "<none>"
    return f"{token[:6]}…"
