"""
Ошибки слоя доступа к данным.

Отсутствие строки ошибкой не считается: методы репозитория возвращают None.
"""


class RepositoryError(Exception):
    """Базовая ошибка репозитория."""


class StoreError(RepositoryError):
    """Ошибка при обращении к базе данных (соединение, выполнение запроса)."""


class AmbiguousResultError(RepositoryError):
    """Запрос, ожидавший не более одной строки, вернул несколько."""

    def __init__(self, entity: str):
        super().__init__(f"{entity}: найдено несколько строк, ожидалась одна")
        self.entity = entity
