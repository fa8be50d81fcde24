"""
Тексты ответов бота
"""
from typing import Iterable

WELCOME = (
    "Привет, @{nickname}! Я-Ленабот!\n"
    "Нажмите {add_place}, чтобы добавить местечко куда нам нужно сходити!\n"
    "Нажмите {places}, чтобы увидеть весь список таких местечек"
)
WELCOME_BACK = "Привет, @{nickname}! Давно не виделись!"
FALLBACK = "Кошмарики, я ничего не поняла...."
ENTER_NAME = "Введите название места, куда нам обязательно нужно съездить!"
EMPTY_NAME = "Название не может быть пустым! Введите название места."
ENTER_PRIORITY = "Введите приоритет места, любое число, чем больше тем важнее!"
NOT_A_NUMBER = "Это не число!"
PLACE_ADDED = "Местечко успешно добавлено!"
CANCELLED = "Добавление места отменено."
STORE_ERROR = "⚠️ Что-то пошло не так. Попробуйте позже."
PLACES_HEADER = "Вот список всех мест"

PLACE_LINE = "{index}. Название: {name}, Приоритет: {priority}"


def render_places(places: Iterable) -> str:
    """Пронумерованный (с 1) список мест в переданном порядке."""
    return "\n".join(
        PLACE_LINE.format(index=index, name=place.place_name, priority=place.place_priority)
        for index, place in enumerate(places, 1)
    )


def places_list(places: Iterable) -> str:
    return f"{PLACES_HEADER}\n\n{render_places(places)}"
