"""
Глобальный обработчик ошибок Telegram-приложения.

Исключения, не обработанные в DialogueController, логируются с traceback,
администраторы получают краткое уведомление (не чаще одного раза в 5 минут).
"""

import traceback
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from shared.config import ADMIN_IDS
from shared.logging_config import logger


_last_admin_notify: Dict[str, datetime] = {}
NOTIFY_INTERVAL = timedelta(minutes=5)


def should_notify(key: str, now: Optional[datetime] = None) -> bool:
    """Ограничение частоты уведомлений: True, если с прошлого прошло NOTIFY_INTERVAL."""
    now = now or datetime.now(timezone.utc)
    last = _last_admin_notify.get(key)
    if last and now - last < NOTIFY_INTERVAL:
        return False
    _last_admin_notify[key] = now
    return True


def describe_update(update: object) -> str:
    if not isinstance(update, Update):
        return ""
    lines = []
    if update.effective_user:
        lines.append(f"Пользователь: {update.effective_user.id}")
    if update.effective_chat:
        lines.append(f"Чат: {update.effective_chat.id}")
    if update.message and update.message.text:
        lines.append(f"Сообщение: {update.message.text[:100]}")
    return "\n".join(lines)


async def notify_admins(message: str, context: ContextTypes.DEFAULT_TYPE, admin_ids: List[int] = None) -> None:
    if not should_notify("global_error"):
        return
    for admin_id in (ADMIN_IDS if admin_ids is None else admin_ids):
        try:
            await context.bot.send_message(chat_id=admin_id, text=message)
        except TelegramError as e:
            logger.warning("Не удалось отправить уведомление админу %s: %s", admin_id, e)


async def global_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    error = context.error
    logger.error("Исключение в обработчике Telegram: %s", error)
    tb_str = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    logger.error("Traceback:\n%s", tb_str)

    update_info = describe_update(update)
    text = "⚠️ В боте произошла ошибка.\n\n"
    if update_info:
        text += f"{update_info}\n"
    text += f"Ошибка: {type(error).__name__}: {error}"

    await notify_admins(text, context)
