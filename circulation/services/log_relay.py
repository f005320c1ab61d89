"""İstemci günlük satırlarını dosyaya ve konsola aktaran yardımcılar.

- ``get_relay_logger``: server.log / error.log dosyalarına ve konsola yazan logger
- ``relay_line``: {level, message} çiftini doğrulayıp yazar
- ``RelayLogHandler``: yerel kayıtları HTTP üzerinden aktarıcıya gönderen handler
"""

import logging
import os
import sys
from typing import Optional

import httpx

from config import settings
from circulation.errors import ValidationError

RELAY_LOGGER_NAME = "circulation.relay"
LOG_FORMAT = "%(asctime)s [%(levelname)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Aktarıcının kabul ettiği seviyeler
LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class RelayFormatter(logging.Formatter):
    """Seviye adlarını istemcinin kullandığı biçimde (INFO/WARN/ERROR) yazar."""

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        if record.levelno == logging.WARNING:
            record.levelname = "WARN"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def get_relay_logger(log_dir: Optional[str] = None) -> logging.Logger:
    """Aktarıcı logger'ını al; dizin değişirse handler'ları yeniden kur."""
    log_dir = log_dir or settings.log_dir
    logger = logging.getLogger(RELAY_LOGGER_NAME)
    if getattr(logger, "_relay_log_dir", None) == log_dir and logger.handlers:
        return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    os.makedirs(log_dir, exist_ok=True)
    formatter = RelayFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    server_log = logging.FileHandler(os.path.join(log_dir, "server.log"), encoding="utf-8")
    server_log.setLevel(logging.INFO)
    error_log = logging.FileHandler(os.path.join(log_dir, "error.log"), encoding="utf-8")
    error_log.setLevel(logging.ERROR)
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)

    for handler in (server_log, error_log, console):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger._relay_log_dir = log_dir
    return logger


def relay_line(level: Optional[str], message: Optional[str], log_dir: Optional[str] = None) -> None:
    if not level or not message:
        raise ValidationError("Level and message are required")
    levelno = LEVELS.get(level.lower())
    if levelno is None:
        raise ValidationError(f"Unknown log level: {level}")
    get_relay_logger(log_dir).log(levelno, message)


def level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    return "info"


class RelayLogHandler(logging.Handler):
    """Kayıtları aktarıcının /log uç noktasına gönderir.

    Teslim edilemeyen satırlar stderr'e yazılır; hata asla yükseltilmez.
    """

    def __init__(self, url: Optional[str] = None, client: Optional[httpx.Client] = None,
                 timeout: float = 2.0) -> None:
        super().__init__()
        self.url = url or settings.log_relay_url
        self._client = client or httpx.Client(timeout=timeout)

    def emit(self, record: logging.LogRecord) -> None:
        if not self.url:
            return
        payload = {"level": level_name(record.levelno), "message": record.getMessage()}
        try:
            response = self._client.post(self.url, json=payload)
            if response.status_code >= 400:
                sys.stderr.write(f"Failed to send log to backend: {response.text}\n")
        except httpx.HTTPError as e:
            sys.stderr.write(f"Error sending log to backend: {e}\n")

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            super().close()
