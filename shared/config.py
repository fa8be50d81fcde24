"""
Конфигурация бота из переменных окружения
"""
import os
from typing import Optional

from dotenv import load_dotenv

# Загрузить переменные окружения из .env файла (если он существует)
# load_dotenv() не выдает ошибку, если файл не найден
try:
    load_dotenv()
except Exception as e:
    # Если есть проблема с dotenv, продолжаем работу с переменными окружения системы
    import warnings
    warnings.warn(f"Не удалось загрузить .env файл: {e}. Используются переменные окружения системы.")


def _env(name: str) -> Optional[str]:
    """Значение переменной окружения; пустая строка считается отсутствием значения."""
    value = os.getenv(name, None)
    if value is None or not value.strip():
        return None
    return value.strip()


# Telegram Bot Token (проверяется при запуске бота, а не при импорте)
TELEGRAM_BOT_TOKEN = _env("TELEGRAM_BOT_TOKEN") or ""

# Database Configuration
# Приоритет: DATABASE_URL > MYSQL_URL (старое имя) > DB_PATH > SQLite по умолчанию
DATABASE_URL = _env("DATABASE_URL") or _env("MYSQL_URL")
DB_PATH = _env("DB_PATH")
BOT_DATA_DIR = _env("BOT_DATA_DIR") or "data"

# Admin Configuration
ADMIN_IDS_STR = os.getenv("ADMIN_IDS", "")
if ADMIN_IDS_STR:
    # Поддержка как списка через запятую, так и одного ID
    ADMIN_IDS = [int(id.strip()) for id in ADMIN_IDS_STR.split(",") if id.strip()]
else:
    ADMIN_IDS = []

# Черновики мест: через сколько минут незавершённый диалог считается брошенным (0 - никогда)
try:
    DRAFT_TTL_MINUTES = int(os.getenv("DRAFT_TTL_MINUTES", "30"))
except ValueError:
    DRAFT_TTL_MINUTES = 30


def resolve_database_url(
    database_url: Optional[str] = None,
    db_path: Optional[str] = None,
    data_dir: str = "data",
) -> str:
    """Определить URL базы данных.

    Явный URL используется как есть, DB_PATH превращается в SQLite URL,
    иначе используется SQLite файл в папке данных.
    """
    if database_url:
        return database_url
    if db_path:
        return f"sqlite:///{db_path}"
    return f"sqlite:///{os.path.join(data_dir, 'db', 'places_bot.db')}"


def validate_config() -> None:
    """Проверка обязательных параметров перед запуском бота."""
    if not TELEGRAM_BOT_TOKEN:
        raise ValueError("TELEGRAM_BOT_TOKEN не указан в .env файле!")
