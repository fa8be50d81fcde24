"""
Скрипт для просмотра пользователей и мест в базе данных.
"""
import argparse
import sys
from typing import List, Optional

from shared.query import PAGER_NO_LIMIT, Pager, new_sort_field, with_sort, without_filters
from shared.repository import CommonRepo, PlaceSearch, UserSearch


def print_users(repo: CommonRepo, include_deleted: bool = False, pager: Pager = PAGER_NO_LIMIT) -> int:
    ops = [without_filters()] if include_deleted else []
    users = repo.users_by_filters(UserSearch(), pager, *ops)
    if not users:
        print("❌ Пользователи не найдены")
        return 0

    print(f"👥 Пользователей: {repo.count_users(UserSearch(), *ops)}")
    print("=" * 80)
    for user in users:
        print(f"ID: {user.id}, Ник: @{user.nickname}, Статус: {user.status_id}, Создан: {user.created_at}")
    return len(users)


def print_places(repo: CommonRepo, user_id: Optional[int] = None, pager: Pager = PAGER_NO_LIMIT) -> int:
    search = PlaceSearch(user_id=user_id)
    places = repo.places_by_filters(
        search,
        pager,
        repo.full_place(),
        with_sort(new_sort_field("place_priority", desc=True), new_sort_field("id")),
    )
    if not places:
        print("❌ Места не найдены")
        if user_id is not None:
            print(f"   Пользователь: {user_id}")
        return 0

    print(f"📍 Мест: {repo.count_places(search)}")
    print("=" * 80)
    for place in places:
        print(
            f"ID: {place.id}, Название: {place.place_name}, Приоритет: {place.place_priority}, "
            f"Владелец: @{place.user.nickname} ({place.user_id})"
        )
    return len(places)


def main(argv: List[str] = None, repo: CommonRepo = None) -> int:
    parser = argparse.ArgumentParser(description="Просмотр пользователей и мест")
    parser.add_argument("--users", action="store_true", help="Показать пользователей")
    parser.add_argument("--include-deleted", action="store_true", help="Включая удалённых пользователей")
    parser.add_argument("--places", action="store_true", help="Показать места")
    parser.add_argument("--user-id", type=int, help="Только места пользователя")
    parser.add_argument("--page", type=int, default=1, help="Номер страницы (с 1)")
    parser.add_argument("--limit", type=int, help="Размер страницы")

    args = parser.parse_args(argv)

    if not args.users and not args.places:
        print("❌ Необходимо указать --users или --places")
        print("\nПримеры использования:")
        print("  python inspect_db.py --users --include-deleted")
        print("  python inspect_db.py --places --user-id 123456789 --limit 20")
        return 1

    if repo is None:
        from shared.database import Session, init_database
        init_database()
        repo = CommonRepo(Session)

    pager = Pager.page(args.page, args.limit) if args.limit else PAGER_NO_LIMIT
    if args.users:
        print_users(repo, include_deleted=args.include_deleted, pager=pager)
    if args.places:
        print_places(repo, user_id=args.user_id, pager=pager)
    return 0


if __name__ == "__main__":
    sys.exit(main())
