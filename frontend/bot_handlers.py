"""
Обработчики команд и сообщений для бота.

Состояние диалога пользователя определяется наличием записи User в БД и
черновиком места в DraftStore:
- нет пользователя: доступна только команда /start;
- нет черновика: команды /start, /add_place, /places;
- черновик без названия: следующее сообщение - название места;
- черновик с названием: следующее сообщение - приоритет (целое число).
"""
import asyncio
import re
from typing import Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from shared.database import User, Place, UserStatus
from shared.drafts import DraftStore, DialogueStage, PlaceDraft, stage_of
from shared.errors import RepositoryError
from shared.logging_config import logger
from shared.query import PAGER_NO_LIMIT, new_sort_field, with_columns, with_sort, without_filters
from shared.repository import CommonRepo, PlaceSearch
from frontend.templates import messages

START_COMMAND = "/start"
ADD_PLACE_COMMAND = "/add_place"
PLACES_LIST_COMMAND = "/places"
CANCEL_COMMAND = "/cancel"

_PRIORITY_RE = re.compile(r"^[+-]?\d+$")


def parse_priority(text: Optional[str]) -> Optional[int]:
    """Приоритет из текста сообщения или None, если это не целое число."""
    text = (text or "").strip()
    if not _PRIORITY_RE.match(text):
        return None
    return int(text)


def nickname_of(tg_user) -> str:
    return tg_user.username or getattr(tg_user, "full_name", None) or str(tg_user.id)


class DialogueController:
    """Диалог регистрации и добавления мест.

    Ответ на каждое входящее сообщение - не больше одного исходящего сообщения.
    Обращения к БД блокирующие и выполняются в отдельном потоке.
    """

    def __init__(self, repo: CommonRepo, drafts: DraftStore):
        self.repo = repo
        self.drafts = drafts

    def register(self, app: Application) -> None:
        # /start - по префиксу, остальные команды - точное совпадение
        app.add_handler(MessageHandler(filters.Regex(f"^{re.escape(START_COMMAND)}"), self.handle_start))
        app.add_handler(MessageHandler(filters.Regex(f"^{re.escape(ADD_PLACE_COMMAND)}$"), self.handle_add_place))
        app.add_handler(MessageHandler(filters.Regex(f"^{re.escape(PLACES_LIST_COMMAND)}$"), self.handle_places))
        app.add_handler(MessageHandler(filters.Regex(f"^{re.escape(CANCEL_COMMAND)}$"), self.handle_cancel))
        app.add_handler(MessageHandler(filters.TEXT, self.handle_text))

    async def _reply(self, update: Update, text: str) -> None:
        try:
            await update.message.reply_text(text)
        except TelegramError as e:
            logger.error("Не удалось отправить сообщение пользователю %s: %s", update.effective_user.id, e)

    async def _store_failed(self, update: Update, error: RepositoryError) -> None:
        logger.error("Ошибка БД при обработке сообщения пользователя %s: %s", update.effective_user.id, error)
        await self._reply(update, messages.STORE_ERROR)

    async def _unknown_user(self, update: Update) -> None:
        logger.warning("Сообщение от незарегистрированного пользователя %s", update.effective_user.id)
        await self._reply(update, messages.FALLBACK)

    async def _registered_user(self, update: Update) -> Optional[User]:
        return await asyncio.to_thread(self.repo.user_by_id, update.effective_user.id)

    async def handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Обработчик команды /start: регистрация или приветствие"""
        if update.message is None:
            return
        tg_user = update.effective_user
        nickname = nickname_of(tg_user)

        try:
            # Удалённые пользователи тоже ищутся, чтобы восстановить их, а не вставлять повторно
            user = await asyncio.to_thread(self.repo.user_by_id, tg_user.id, without_filters())
            if user is None:
                user = await asyncio.to_thread(
                    self.repo.add_user,
                    User(id=tg_user.id, nickname=nickname, status_id=UserStatus.ENABLED),
                )
                logger.info("Зарегистрирован пользователь %s (@%s)", user.id, user.nickname)
                await self._reply(update, self._welcome(user))
                return

            if user.status_id == UserStatus.DELETED:
                user.status_id = UserStatus.ENABLED
                user.nickname = nickname
                await asyncio.to_thread(self.repo.update_user, user, with_columns("nickname", "status_id"))
                logger.info("Восстановлен пользователь %s (@%s)", user.id, user.nickname)
                await self._reply(update, self._welcome(user))
                return

            if user.nickname != nickname:
                user.nickname = nickname
                await asyncio.to_thread(self.repo.update_user, user, with_columns("nickname"))
        except RepositoryError as e:
            await self._store_failed(update, e)
            return

        await self._reply(update, messages.WELCOME_BACK.format(nickname=user.nickname))

    @staticmethod
    def _welcome(user: User) -> str:
        return messages.WELCOME.format(
            nickname=user.nickname,
            add_place=ADD_PLACE_COMMAND,
            places=PLACES_LIST_COMMAND,
        )

    async def handle_add_place(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Обработчик команды /add_place: начать (или начать заново) добавление места"""
        if update.message is None:
            return
        try:
            user = await self._registered_user(update)
        except RepositoryError as e:
            await self._store_failed(update, e)
            return
        if user is None:
            await self._unknown_user(update)
            return

        self.drafts.store(user.id, PlaceDraft(user_id=user.id))
        logger.info("Пользователь %s начал добавление места", user.id)
        await self._reply(update, messages.ENTER_NAME)

    async def handle_places(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Обработчик команды /places: все места по убыванию приоритета"""
        if update.message is None:
            return
        try:
            user = await self._registered_user(update)
            if user is None:
                await self._unknown_user(update)
                return
            places = await asyncio.to_thread(
                self.repo.places_by_filters,
                PlaceSearch(),
                PAGER_NO_LIMIT,
                with_sort(new_sort_field("place_priority", desc=True)),
            )
        except RepositoryError as e:
            await self._store_failed(update, e)
            return

        if not places:
            return
        await self._reply(update, messages.places_list(places))

    async def handle_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Обработчик команды /cancel: отменить добавление места"""
        if update.message is None:
            return
        user_id = update.effective_user.id
        _, found = self.drafts.load(user_id)
        if not found:
            # Без черновика это незнакомый или не начавший диалог пользователь
            logger.warning("Команда /cancel без активного черновика от пользователя %s", user_id)
            await self._reply(update, messages.FALLBACK)
            return
        self.drafts.delete(user_id)
        logger.info("Пользователь %s отменил добавление места", user_id)
        await self._reply(update, messages.CANCELLED)

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Обработчик текстовых сообщений: шаги диалога добавления места"""
        if update.message is None or update.message.text is None:
            return
        try:
            user = await self._registered_user(update)
        except RepositoryError as e:
            await self._store_failed(update, e)
            return
        if user is None:
            await self._unknown_user(update)
            return

        draft, _ = self.drafts.load(user.id)
        stage = stage_of(draft)
        if stage is DialogueStage.IDLE:
            await self._reply(update, messages.FALLBACK)
        elif stage is DialogueStage.AWAITING_NAME:
            await self._accept_name(update, user, update.message.text)
        elif stage is DialogueStage.AWAITING_PRIORITY:
            await self._accept_priority(update, user, update.message.text)
        else:
            raise ValueError(f"Неизвестное состояние диалога: {stage}")

    async def _accept_name(self, update: Update, user: User, text: str) -> None:
        name = text.strip()
        if not name:
            await self._reply(update, messages.EMPTY_NAME)
            return

        def set_name(current: Optional[PlaceDraft]) -> Optional[PlaceDraft]:
            if current is None or current.stage is not DialogueStage.AWAITING_NAME:
                return current
            return current.with_name(name)

        if self.drafts.update(user.id, set_name) is None:
            await self._reply(update, messages.FALLBACK)
            return
        await self._reply(update, messages.ENTER_PRIORITY)

    async def _accept_priority(self, update: Update, user: User, text: str) -> None:
        priority = parse_priority(text)
        if priority is None:
            await self._reply(update, messages.NOT_A_NUMBER)
            return

        # Черновик забирается из хранилища атомарно: второе параллельное сообщение его уже не увидит
        taken = []

        def take(current: Optional[PlaceDraft]) -> Optional[PlaceDraft]:
            if current is not None and current.stage is DialogueStage.AWAITING_PRIORITY:
                taken.append(current.with_priority(priority))
                return None
            return current

        self.drafts.update(user.id, take)
        if not taken:
            await self._reply(update, messages.FALLBACK)
            return
        draft = taken[0]

        try:
            place = await asyncio.to_thread(
                self.repo.add_place,
                Place(user_id=draft.user_id, place_name=draft.name, place_priority=draft.priority),
            )
        except RepositoryError as e:
            # Вернуть черновик, чтобы пользователь мог повторить ввод приоритета
            self.drafts.update(user.id, lambda current: current if current is not None else draft)
            await self._store_failed(update, e)
            return

        logger.info("Пользователь %s добавил место %s (приоритет %s)", user.id, place.id, place.place_priority)
        await self._reply(update, messages.PLACE_ADDED)
