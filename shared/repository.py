"""
Репозиторий сущностей (User, Place) поверх построителя запросов.

Базовые фильтры, сортировка по умолчанию и наборы связей хранятся в словарях,
ключ - имя таблицы. Новая сущность подключается регистрацией своих значений,
общие методы _one/_list/_count/_add/_update от сущности не зависят.
"""
import copy
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as SASession, sessionmaker

from shared.database import User, Place, UserStatus
from shared.errors import StoreError
from shared.query import (
    PAGER_NO_LIMIT,
    PAGER_TWO,
    SORT_DESC,
    TABLE_COLUMNS,
    Filter,
    OpFunc,
    Pager,
    QuerySpec,
    Search,
    SortField,
    apply_ops,
    build_query,
    criterion,
    select_one,
    with_columns,
    with_sort,
)


@dataclass
class UserSearch(Search):
    id: Optional[int] = criterion()
    ids: Optional[List[int]] = criterion("id", "in")
    nickname: Optional[str] = criterion()
    nickname_ilike: Optional[str] = criterion("nickname", "ilike")
    status_id: Optional[int] = criterion()
    created_from: Optional[datetime] = criterion("created_at", "ge")
    created_to: Optional[datetime] = criterion("created_at", "le")


@dataclass
class PlaceSearch(Search):
    id: Optional[int] = criterion()
    ids: Optional[List[int]] = criterion("id", "in")
    user_id: Optional[int] = criterion()
    place_name: Optional[str] = criterion()
    place_name_ilike: Optional[str] = criterion("place_name", "ilike")
    place_priority: Optional[int] = criterion()
    priority_from: Optional[int] = criterion("place_priority", "ge")
    priority_to: Optional[int] = criterion("place_priority", "le")


# Скрывает удалённых пользователей
STATUS_FILTER = Filter("status_id", UserStatus.DELETED, "ne")
STATUS_ENABLED_FILTER = Filter("status_id", UserStatus.ENABLED)


class CommonRepo:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._session: Optional[SASession] = None

        users, places = User.__tablename__, Place.__tablename__
        self.filters: Dict[str, Tuple[Filter, ...]] = {
            users: (STATUS_FILTER,),
        }
        self.sort: Dict[str, Tuple[SortField, ...]] = {
            users: (SortField("created_at", SORT_DESC),),
            places: (SortField("id", SORT_DESC),),
        }
        self.join: Dict[str, Tuple[str, ...]] = {
            users: (TABLE_COLUMNS,),
            places: (TABLE_COLUMNS, "user"),
        }
        # Колонки, которые заполняет БД: не передаются при вставке и не меняются при обновлении
        self.generated: Dict[str, Tuple[str, ...]] = {
            users: ("created_at",),
            places: ("id",),
        }

    def with_session(self, session: SASession) -> "CommonRepo":
        """Копия репозитория, работающая в переданной сессии (транзакции)."""
        repo = copy.copy(self)
        repo._session = session
        return repo

    def with_enabled_only(self) -> "CommonRepo":
        """Копия репозитория с дополнительным фильтром status_id = ENABLED."""
        repo = copy.copy(self)
        repo.filters = {name: filters + (STATUS_ENABLED_FILTER,) for name, filters in self.filters.items()}
        return repo

    @contextmanager
    def transaction(self) -> Iterator["CommonRepo"]:
        session = self._session_factory()
        try:
            yield self.with_session(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _scope(self, spec: QuerySpec) -> Iterator[SASession]:
        bound = spec.session or self._session
        if bound is not None:
            # Фиксацией управляет владелец сессии
            try:
                yield bound
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            return

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _spec(self, model, search: Optional[Search], pager: Pager, sort: Tuple[SortField, ...] = ()) -> QuerySpec:
        return QuerySpec(
            model=model,
            search=search,
            filters=self.filters.get(model.__tablename__, ()),
            pager=pager,
            sort=sort,
        )

    def _one(self, model, search: Optional[Search], ops: Tuple[OpFunc, ...]):
        spec = apply_ops(self._spec(model, search, PAGER_TWO), *ops)
        with self._scope(spec) as session:
            return select_one(build_query(session, spec), model.__tablename__)

    def _list(self, model, search: Optional[Search], pager: Pager, ops: Tuple[OpFunc, ...]) -> list:
        default_sort = self.sort.get(model.__tablename__, ())
        spec = apply_ops(self._spec(model, search, pager, default_sort), *ops)
        with self._scope(spec) as session:
            return build_query(session, spec).all()

    def _count(self, model, search: Optional[Search], ops: Tuple[OpFunc, ...]) -> int:
        spec = apply_ops(self._spec(model, search, PAGER_NO_LIMIT), *ops)
        spec = replace(spec, sort=(), pager=PAGER_NO_LIMIT)
        with self._scope(spec) as session:
            return build_query(session, spec).count()

    def _write_columns(self, model, spec: QuerySpec, exclude: Tuple[str, ...]) -> List[str]:
        own = [attr.key for attr in sa_inspect(model).column_attrs if attr.key not in exclude]
        explicit = spec.columns - {TABLE_COLUMNS}
        if explicit:
            return [c for c in own if c in explicit]
        return own

    def _add(self, model, entity, ops: Tuple[OpFunc, ...]):
        spec = apply_ops(QuerySpec(model=model), *ops)
        columns = self._write_columns(model, spec, self.generated.get(model.__tablename__, ()))
        row = model(**{c: getattr(entity, c) for c in columns if getattr(entity, c) is not None})
        with self._scope(spec) as session:
            session.add(row)
            session.flush()
        return row

    def _update(self, model, entity, ops: Tuple[OpFunc, ...]) -> bool:
        spec = apply_ops(QuerySpec(model=model), *ops)
        pk = sa_inspect(model).primary_key[0].key
        exclude = (pk,) + self.generated.get(model.__tablename__, ())
        values = {c: getattr(entity, c) for c in self._write_columns(model, spec, exclude)}
        if not values:
            return False
        with self._scope(spec) as session:
            updated = (
                session.query(model)
                .filter(getattr(model, pk) == getattr(entity, pk))
                .update(values, synchronize_session=False)
            )
        return updated > 0

    # *** User ***

    def full_user(self) -> OpFunc:
        return with_columns(*self.join[User.__tablename__])

    def default_user_sort(self) -> OpFunc:
        return with_sort(*self.sort[User.__tablename__])

    def user_by_id(self, id: int, *ops: OpFunc) -> Optional[User]:
        return self.one_user(UserSearch(id=id), *ops)

    def one_user(self, search: Optional[UserSearch], *ops: OpFunc) -> Optional[User]:
        """Один пользователь или None. Может выбросить AmbiguousResultError."""
        return self._one(User, search, ops)

    def users_by_filters(self, search: Optional[UserSearch], pager: Pager, *ops: OpFunc) -> List[User]:
        return self._list(User, search, pager, ops)

    def count_users(self, search: Optional[UserSearch], *ops: OpFunc) -> int:
        return self._count(User, search, ops)

    def add_user(self, user: User, *ops: OpFunc) -> User:
        """Добавить пользователя. created_at всегда выставляется при вставке."""
        return self._add(User, user, ops)

    def update_user(self, user: User, *ops: OpFunc) -> bool:
        return self._update(User, user, ops)

    def delete_user(self, id: int) -> bool:
        """Мягкое удаление: status_id = DELETED."""
        user = User(id=id, status_id=UserStatus.DELETED)
        return self.update_user(user, with_columns("status_id"))

    # *** Place ***

    def full_place(self) -> OpFunc:
        return with_columns(*self.join[Place.__tablename__])

    def default_place_sort(self) -> OpFunc:
        return with_sort(*self.sort[Place.__tablename__])

    def place_by_id(self, id: int, *ops: OpFunc) -> Optional[Place]:
        return self.one_place(PlaceSearch(id=id), *ops)

    def one_place(self, search: Optional[PlaceSearch], *ops: OpFunc) -> Optional[Place]:
        """Одно место или None. Может выбросить AmbiguousResultError."""
        return self._one(Place, search, ops)

    def places_by_filters(self, search: Optional[PlaceSearch], pager: Pager, *ops: OpFunc) -> List[Place]:
        return self._list(Place, search, pager, ops)

    def count_places(self, search: Optional[PlaceSearch], *ops: OpFunc) -> int:
        return self._count(Place, search, ops)

    def add_place(self, place: Place, *ops: OpFunc) -> Place:
        return self._add(Place, place, ops)

    def update_place(self, place: Place, *ops: OpFunc) -> bool:
        return self._update(Place, place, ops)
