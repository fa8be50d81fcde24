"""
Главный файл Telegram бота для списка мест
"""
# Инициализировать логирование ПЕРВЫМ
from shared.logging_config import logger

from datetime import timedelta

from telegram.ext import ApplicationBuilder

from shared.config import TELEGRAM_BOT_TOKEN, DRAFT_TTL_MINUTES, validate_config
from shared.database import Session, init_database
from shared.drafts import InMemoryDraftStore
from shared.repository import CommonRepo
from frontend.bot_handlers import DialogueController
from frontend.error_handlers import global_error_handler


def build_application(token: str, repo: CommonRepo, drafts: InMemoryDraftStore):
    # Обновления обрабатываются параллельно, порядок между пользователями не гарантируется
    app = ApplicationBuilder().token(token).concurrent_updates(True).build()
    DialogueController(repo, drafts).register(app)
    app.add_error_handler(global_error_handler)
    return app


def main():
    """Запуск бота"""
    validate_config()

    logger.info("Инициализация базы данных...")
    init_database()
    logger.info("База данных инициализирована")

    ttl = timedelta(minutes=DRAFT_TTL_MINUTES) if DRAFT_TTL_MINUTES > 0 else None
    app = build_application(TELEGRAM_BOT_TOKEN, CommonRepo(Session), InMemoryDraftStore(ttl=ttl))

    logger.info("Бот запущен...")
    app.run_polling()


if __name__ == "__main__":
    main()
