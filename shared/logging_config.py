"""
Логирование бота мест: консоль и ротируемый файл BOT_LOG_DIR/bot.log.

Размер файла и число архивов задаются LOG_MAX_BYTES и LOG_BACKUP_COUNT.
Повторный вызов setup_logging() обработчики не дублирует.
"""

import logging
import os
from logging.handlers import RotatingFileHandler


LOG_DIR = os.getenv("BOT_LOG_DIR", "data/logs")
LOG_FILE = os.path.join(LOG_DIR, "bot.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

# Библиотеки, которые на INFO пишут каждый запрос к Telegram и каждый SQL
QUIET_LOGGERS = ("httpx", "httpcore", "telegram", "sqlalchemy.engine")

_configured = False


def _handlers(formatter: logging.Formatter):
    console = logging.StreamHandler()
    rotating = RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    for handler in (console, rotating):
        handler.setLevel(logging.INFO)
        handler.setFormatter(formatter)
        yield handler


def setup_logging() -> logging.Logger:
    global _configured
    bot_logger = logging.getLogger("bot")
    if _configured:
        return bot_logger

    os.makedirs(LOG_DIR, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in _handlers(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")):
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    bot_logger.info("Логи бота мест: %s (ротация %s байт, архивов %s)", LOG_FILE, LOG_MAX_BYTES, LOG_BACKUP_COUNT)
    return bot_logger


logger = setup_logging()
