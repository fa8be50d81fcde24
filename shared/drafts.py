"""
Черновики мест и хранилище состояния диалога добавления места.

Черновик существует между командой /add_place и сообщением с корректным приоритетом.
У каждого пользователя не больше одного черновика.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from shared.logging_config import logger


class DialogueStage(str, Enum):
    IDLE = "idle"
    AWAITING_NAME = "awaiting_name"
    AWAITING_PRIORITY = "awaiting_priority"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlaceDraft:
    user_id: int
    # None - название ещё не введено
    name: Optional[str] = None
    priority: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def stage(self) -> DialogueStage:
        if self.name is None:
            return DialogueStage.AWAITING_NAME
        return DialogueStage.AWAITING_PRIORITY

    def with_name(self, name: str) -> "PlaceDraft":
        return replace(self, name=name)

    def with_priority(self, priority: int) -> "PlaceDraft":
        return replace(self, priority=priority)

    def is_expired(self, ttl: Optional[timedelta], now: Optional[datetime] = None) -> bool:
        if not ttl:
            return False
        return (now or _utcnow()) - self.created_at > ttl


def stage_of(draft: Optional[PlaceDraft]) -> DialogueStage:
    return draft.stage if draft is not None else DialogueStage.IDLE


DraftUpdater = Callable[[Optional[PlaceDraft]], Optional[PlaceDraft]]


class DraftStore(ABC):
    """Хранилище черновиков, ключ - Telegram ID пользователя"""

    @abstractmethod
    def store(self, user_id: int, draft: PlaceDraft) -> None:
        raise NotImplementedError

    @abstractmethod
    def load(self, user_id: int) -> Tuple[Optional[PlaceDraft], bool]:
        """Вернуть (черновик, найден ли он)."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, user_id: int, fn: DraftUpdater) -> Optional[PlaceDraft]:
        """Атомарно заменить черновик результатом fn(текущий черновик).

        Если fn вернула None, черновик удаляется. Возвращает новое значение.
        """
        raise NotImplementedError


class InMemoryDraftStore(DraftStore):
    """Черновики в памяти процесса; после перезапуска диалоги начинаются заново.

    Просроченные черновики (старше ttl) считаются брошенными и удаляются при чтении.
    """

    def __init__(self, ttl: Optional[timedelta] = None):
        self._drafts: Dict[int, PlaceDraft] = {}
        self._lock = threading.Lock()
        self.ttl = ttl

    def _get(self, user_id: int) -> Optional[PlaceDraft]:
        draft = self._drafts.get(user_id)
        if draft is not None and draft.is_expired(self.ttl):
            del self._drafts[user_id]
            logger.info("Черновик пользователя %s просрочен и удалён", user_id)
            return None
        return draft

    def store(self, user_id: int, draft: PlaceDraft) -> None:
        with self._lock:
            self._drafts[user_id] = draft

    def load(self, user_id: int) -> Tuple[Optional[PlaceDraft], bool]:
        with self._lock:
            draft = self._get(user_id)
        return draft, draft is not None

    def delete(self, user_id: int) -> None:
        with self._lock:
            self._drafts.pop(user_id, None)

    def update(self, user_id: int, fn: DraftUpdater) -> Optional[PlaceDraft]:
        with self._lock:
            draft = fn(self._get(user_id))
            if draft is None:
                self._drafts.pop(user_id, None)
            else:
                self._drafts[user_id] = draft
            return draft

    def __len__(self) -> int:
        with self._lock:
            return len(self._drafts)
