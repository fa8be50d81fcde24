"""
Построитель запросов к БД.

Запрос описывается неизменяемым QuerySpec: критерии поиска, базовые фильтры,
сортировка, пагинация, набор колонок/связей и (опционально) сессия.
Опции - чистые функции QuerySpec -> QuerySpec, применяются слева направо,
после чего build_query() превращает спецификацию в sqlalchemy.orm.Query.
"""
from dataclasses import dataclass, field, fields, replace
from functools import reduce
from typing import Any, Callable, FrozenSet, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Query, Session, joinedload, load_only

from shared.errors import AmbiguousResultError

# Все собственные колонки сущности (без связей)
TABLE_COLUMNS = "*"

SORT_ASC = "asc"
SORT_DESC = "desc"

_OPERATORS = {
    "eq": lambda column, value: column == value,
    "ne": lambda column, value: column != value,
    "in": lambda column, value: column.in_(list(value)),
    "ge": lambda column, value: column >= value,
    "le": lambda column, value: column <= value,
    "ilike": lambda column, value: column.ilike(f"%{value}%"),
}


def column_key(column: Any) -> str:
    """Имя колонки: строка или атрибут модели (User.nickname)."""
    return getattr(column, "key", column)


def _column(model, column: Any):
    key = column_key(column)
    if key not in sa_inspect(model).column_attrs:
        raise ValueError(f"Неизвестная колонка {model.__tablename__}.{key}")
    return getattr(model, key)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def criterion(column: Optional[str] = None, op: str = "eq"):
    """Поле критерия поиска: пустое значение не накладывает ограничений."""
    if op not in _OPERATORS:
        raise ValueError(f"Неизвестный оператор: {op}")
    return field(default=None, metadata={"column": column, "op": op})


@dataclass
class Search:
    """Базовый класс критериев поиска.

    Каждое непустое поле превращается в условие, условия объединяются через AND.
    Имя колонки и оператор задаются через criterion().
    """

    def conditions(self, model) -> List[Any]:
        result = []
        for f in fields(self):
            value = getattr(self, f.name)
            if _is_empty(value):
                continue
            column = _column(model, f.metadata.get("column") or f.name)
            result.append(_OPERATORS[f.metadata.get("op", "eq")](column, value))
        return result


@dataclass(frozen=True)
class Filter:
    """Базовый фильтр, добавляемый к каждому запросу сущности."""
    column: str
    value: Any
    op: str = "eq"

    def clause(self, model):
        return _OPERATORS[self.op](_column(model, self.column), self.value)


@dataclass(frozen=True)
class SortField:
    column: str
    direction: str = SORT_ASC

    def clause(self, model):
        column = _column(model, self.column)
        return column.desc() if self.direction == SORT_DESC else column.asc()


def new_sort_field(column: Any, desc: bool = False) -> SortField:
    return SortField(column_key(column), SORT_DESC if desc else SORT_ASC)


@dataclass(frozen=True)
class Pager:
    offset: int = 0
    limit: Optional[int] = None

    @classmethod
    def page(cls, page: int, page_size: int) -> "Pager":
        """Страница с номером page (начиная с 1)."""
        if page < 1 or page_size < 1:
            raise ValueError("page и page_size должны быть положительными")
        return cls(offset=(page - 1) * page_size, limit=page_size)


PAGER_NO_LIMIT = Pager()
PAGER_ONE = Pager(limit=1)
# Для выборки "ровно одной" строки: вторая строка означает неоднозначный результат
PAGER_TWO = Pager(limit=2)


@dataclass(frozen=True)
class QuerySpec:
    model: Any
    search: Optional[Search] = None
    filters: Tuple[Filter, ...] = ()
    pager: Pager = PAGER_NO_LIMIT
    sort: Tuple[SortField, ...] = ()
    columns: FrozenSet[str] = frozenset()
    use_filters: bool = True
    session: Optional[Session] = None


OpFunc = Callable[[QuerySpec], QuerySpec]


def with_columns(*columns: Any) -> OpFunc:
    """Колонки и связи для загрузки (для update - колонки для записи)."""
    names = frozenset(column_key(c) for c in columns)

    def op(spec: QuerySpec) -> QuerySpec:
        return replace(spec, columns=spec.columns | names)
    return op


def with_sort(*sort_fields: SortField) -> OpFunc:
    """Заменяет сортировку запроса."""
    def op(spec: QuerySpec) -> QuerySpec:
        return replace(spec, sort=tuple(sort_fields))
    return op


def without_filters() -> OpFunc:
    """Отключает базовые фильтры сущности (например, чтобы найти удалённых)."""
    def op(spec: QuerySpec) -> QuerySpec:
        return replace(spec, use_filters=False)
    return op


def with_session(session: Session) -> OpFunc:
    """Выполнить запрос в переданной сессии (транзакции)."""
    def op(spec: QuerySpec) -> QuerySpec:
        return replace(spec, session=session)
    return op


def apply_ops(spec: QuerySpec, *ops: OpFunc) -> QuerySpec:
    return reduce(lambda acc, op: op(acc), ops, spec)


def load_options(model, columns: FrozenSet[str]) -> list:
    mapper = sa_inspect(model)
    options = []
    own = []
    for name in sorted(columns):
        if name == TABLE_COLUMNS:
            continue
        if name in mapper.relationships:
            options.append(joinedload(getattr(model, name)))
        else:
            own.append(_column(model, name))
    if own and TABLE_COLUMNS not in columns:
        options.append(load_only(*own))
    return options


def build_query(session: Session, spec: QuerySpec) -> Query:
    model = spec.model
    query = session.query(model)

    if spec.use_filters:
        for f in spec.filters:
            query = query.filter(f.clause(model))
    if spec.search is not None:
        for condition in spec.search.conditions(model):
            query = query.filter(condition)

    options = load_options(model, spec.columns)
    if options:
        query = query.options(*options)

    if spec.sort:
        query = query.order_by(*(s.clause(model) for s in spec.sort))
    if spec.pager.offset:
        query = query.offset(spec.pager.offset)
    if spec.pager.limit is not None:
        query = query.limit(spec.pager.limit)
    return query


def select_one(query: Query, entity: str):
    """Одна строка, None если строк нет, AmbiguousResultError если их больше одной.

    Запрос должен быть ограничен PAGER_TWO.
    """
    rows = query.all()
    if len(rows) > 1:
        raise AmbiguousResultError(entity)
    return rows[0] if rows else None
