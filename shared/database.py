from datetime import datetime, timezone
import os

from sqlalchemy import create_engine, event, Column, Integer, BigInteger, String, DateTime, ForeignKey
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, relationship

from shared.config import DATABASE_URL, DB_PATH, BOT_DATA_DIR, resolve_database_url
from shared.logging_config import logger

Base = declarative_base()


class UserStatus:
    ENABLED = 1
    DELETED = 2


class User(Base):
    __tablename__ = 'users'
    # Telegram ID пользователя, задаётся извне
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    nickname = Column(String(64), nullable=False, default='')
    status_id = Column(Integer, nullable=False, default=UserStatus.ENABLED)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<User id={self.id} nickname={self.nickname!r} status_id={self.status_id}>"


class Place(Base):
    """Место, которое пользователь хочет посетить"""
    __tablename__ = 'places'

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, ForeignKey('users.id'), nullable=False)
    place_name = Column(String(255), nullable=False)
    place_priority = Column(Integer, nullable=False, default=0)

    # Владелец подгружается только явно (CommonRepo.full_place())
    user = relationship("User", lazy="raise")

    def __repr__(self):
        return f"<Place id={self.id} user_id={self.user_id} place_name={self.place_name!r} place_priority={self.place_priority}>"


def make_engine(db_url: str) -> Engine:
    """Создать движок; для SQLite включаются внешние ключи."""
    is_sqlite = db_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(db_url, echo=False, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    # Объекты используются после закрытия сессии, поэтому не сбрасываем их при commit
    return sessionmaker(bind=engine, expire_on_commit=False)


db_url = resolve_database_url(DATABASE_URL, DB_PATH, BOT_DATA_DIR)
engine = make_engine(db_url)
Session = make_session_factory(engine)


def _safe_url(url: str) -> str:
    """URL без пароля для логов"""
    if '@' in url and '://' in url:
        scheme, rest = url.split('://', 1)
        auth, host = rest.rsplit('@', 1)
        user = auth.split(':')[0]
        return f"{scheme}://{user}:***@{host}"
    return url


def init_database(target: Engine = None) -> None:
    """Создать таблицы (если их ещё нет)"""
    target = target or engine
    url = str(target.url)
    if url.startswith("sqlite") and target.url.database:
        db_dir = os.path.dirname(target.url.database)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
            logger.info("📁 Создана директория базы данных: %s", db_dir)
    logger.info("🔗 URL базы данных: %s", _safe_url(url))
    Base.metadata.create_all(target)
