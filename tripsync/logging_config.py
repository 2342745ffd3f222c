"""ロギング設定

Cloud Run 上では Cloud Logging が解釈できる1行JSON、ローカルでは人が読むテキストで出力する。

    from tripsync.logging_config import setup_logging
    setup_logging()

環境変数:
    LOG_LEVEL   出力レベル（既定 INFO）
    LOG_FORMAT  "json" / "text" で出力形式を強制（未指定時は実行環境から判定）
    K_SERVICE / CLOUD_RUN_JOB  Cloud Run が自動設定。存在すれば JSON 出力

構造化フィールドは observability.fields() で extra_fields として渡す:
    logger.info("Invite created", extra=fields(trip_id=trip_id))
"""

import json
import logging
import os

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _extra_fields(record: logging.LogRecord) -> dict:
    return getattr(record, "extra_fields", None) or {}


class CloudLoggingFormatter(logging.Formatter):
    """LogRecord を Cloud Logging の構造化ログ（severity 付き JSON）に変換する"""

    LEVEL_TO_SEVERITY = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "severity": self.LEVEL_TO_SEVERITY.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            **_extra_fields(record),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """extra_fields を key=value で行末に並べるテキストフォーマッタ"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = " ".join(f"{k}={v}" for k, v in _extra_fields(record).items())
        return f"{line} {pairs}" if pairs else line


def _use_json() -> bool:
    forced = os.getenv("LOG_FORMAT", "").lower()
    if forced in ("json", "text"):
        return forced == "json"
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging() -> None:
    """root ロガーのハンドラを1つに張り替える（何度呼んでも重複しない）"""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    handler = logging.StreamHandler()
    handler.setFormatter(
        CloudLoggingFormatter()
        if _use_json()
        else TextFormatter(_TEXT_FORMAT, datefmt=_TEXT_DATEFMT)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
