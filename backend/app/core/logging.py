import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from fastapi import Request

from app.core.config import settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def _configure_root() -> None:
    """ルートロガーの初期設定（一度だけ実行）"""
    global _configured
    if _configured:
        return

    root = logging.getLogger("app")
    root.setLevel(settings.LOG_LEVEL.upper())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console_handler)

    # ファイル出力（設定で有効な場合のみ）
    if settings.LOG_TO_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        file_handler = RotatingFileHandler(
            settings.LOG_FILE_PATH,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """モジュール用のロガーを取得"""
    _configure_root()
    if not name.startswith("app"):
        name = f"app.{name}"
    return logging.getLogger(name)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """リクエストIDをメッセージに付与するアダプター"""

    def process(self, msg, kwargs):
        return f"[{self.extra['request_id']}] {msg}", kwargs


def get_request_logger(request: Request) -> logging.LoggerAdapter:
    """リクエスト単位のロガーを取得"""
    request_id = getattr(request.state, "request_id", "-")
    return RequestLoggerAdapter(get_logger("app.request"), {"request_id": request_id})


app_logger = get_logger("app")
