from dataclasses import replace

import pytest

pytest.importorskip("sqlalchemy")

from shared.database import User, Place, UserStatus
from shared.errors import AmbiguousResultError
from shared.query import (
    PAGER_TWO,
    SORT_DESC,
    TABLE_COLUMNS,
    Filter,
    Pager,
    QuerySpec,
    SortField,
    apply_ops,
    build_query,
    load_options,
    new_sort_field,
    select_one,
    with_columns,
    with_sort,
    with_session,
    without_filters,
)
from shared.repository import PlaceSearch, UserSearch


def _seed(session_factory):
    session = session_factory()
    session.add_all([
        User(id=1, nickname="anna", status_id=UserStatus.ENABLED),
        User(id=2, nickname="boris", status_id=UserStatus.ENABLED),
        User(id=3, nickname="vasya", status_id=UserStatus.DELETED),
    ])
    session.flush()
    session.add_all([
        Place(user_id=1, place_name="Beach", place_priority=5),
        Place(user_id=1, place_name="Museum", place_priority=10),
        Place(user_id=2, place_name="Park", place_priority=1),
    ])
    session.commit()
    session.close()


def test_empty_search_has_no_conditions():
    assert UserSearch().conditions(User) == []
    assert PlaceSearch(place_name="", ids=[]).conditions(Place) == []


def test_search_zero_is_a_value():
    assert len(PlaceSearch(place_priority=0).conditions(Place)) == 1


def test_search_fields_are_conjoined(session_factory):
    _seed(session_factory)
    session = session_factory()
    spec = QuerySpec(model=Place, search=PlaceSearch(user_id=1, priority_from=6))
    places = build_query(session, spec).all()
    assert [p.place_name for p in places] == ["Museum"]
    session.close()


def test_with_columns_is_idempotent_and_order_independent():
    base = QuerySpec(model=Place)
    once = apply_ops(base, with_columns(TABLE_COLUMNS, "user"))
    repeated = apply_ops(base, with_columns("user"), with_columns(TABLE_COLUMNS), with_columns("user"))
    assert once == repeated
    assert once.columns == frozenset({TABLE_COLUMNS, "user"})


def test_with_columns_accepts_model_attributes():
    spec = apply_ops(QuerySpec(model=User), with_columns(User.status_id))
    assert spec.columns == frozenset({"status_id"})


def test_options_do_not_mutate_base_spec():
    base = QuerySpec(model=User, filters=(Filter("status_id", UserStatus.ENABLED),))
    changed = apply_ops(base, without_filters(), with_sort(SortField("id", SORT_DESC)))
    assert base.use_filters is True
    assert base.sort == ()
    assert changed.use_filters is False
    assert changed.sort == (SortField("id", SORT_DESC),)


def test_with_sort_replaces_previous_sort():
    spec = apply_ops(
        QuerySpec(model=Place),
        with_sort(new_sort_field("id", desc=True)),
        with_sort(new_sort_field(Place.place_priority)),
    )
    assert spec.sort == (SortField("place_priority"),)


def test_with_session_binds_session(session_factory):
    session = session_factory()
    spec = apply_ops(QuerySpec(model=User), with_session(session))
    assert spec.session is session
    session.close()


def test_baseline_filters_and_override(session_factory):
    _seed(session_factory)
    session = session_factory()
    spec = QuerySpec(model=User, filters=(Filter("status_id", UserStatus.DELETED, "ne"),))

    assert sorted(u.id for u in build_query(session, spec).all()) == [1, 2]
    # Критерии поиска не отменяют базовый фильтр
    assert build_query(session, replace(spec, search=UserSearch(id=3))).all() == []
    spec_all = apply_ops(spec, without_filters())
    assert sorted(u.id for u in build_query(session, spec_all).all()) == [1, 2, 3]
    session.close()


def test_sort_and_pager(session_factory):
    _seed(session_factory)
    session = session_factory()
    spec = QuerySpec(
        model=Place,
        sort=(new_sort_field("place_priority", desc=True),),
        pager=Pager.page(2, 2),
    )
    assert [p.place_name for p in build_query(session, spec).all()] == ["Park"]
    spec = QuerySpec(model=Place, sort=(new_sort_field("place_priority", desc=True),), pager=Pager(limit=2))
    assert [p.place_name for p in build_query(session, spec).all()] == ["Museum", "Beach"]
    session.close()


def test_pager_page_validation():
    assert Pager.page(3, 10) == Pager(offset=20, limit=10)
    with pytest.raises(ValueError):
        Pager.page(0, 10)


def test_unknown_column_raises():
    with pytest.raises(ValueError):
        SortField("missing").clause(User)
    with pytest.raises(ValueError):
        Filter("missing", 1).clause(Place)


def test_load_options_joins_relationship():
    assert load_options(Place, frozenset({TABLE_COLUMNS})) == []
    assert len(load_options(Place, frozenset({TABLE_COLUMNS, "user"}))) == 1
    # Отдельные колонки без TABLE_COLUMNS - load_only
    assert len(load_options(User, frozenset({"nickname"}))) == 1


def test_select_one_classifies_rows(session_factory):
    _seed(session_factory)
    session = session_factory()

    def one(search):
        return select_one(build_query(session, QuerySpec(model=Place, search=search, pager=PAGER_TWO)), "places")

    assert one(PlaceSearch(place_name="Nowhere")) is None
    assert one(PlaceSearch(place_name="Park")).place_priority == 1
    with pytest.raises(AmbiguousResultError):
        one(PlaceSearch(user_id=1))
    session.close()
