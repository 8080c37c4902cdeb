"""
Встроенные функции шаблонов.

Таблица DEFAULT_FUNCTIONS регистрируется в каждом TemplateSet.
Функции получают значения как есть; неверные аргументы приводят
к TypeError/ValueError, которые вычислитель оборачивает в CallError.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, TypeVar

from .values import to_string

F = TypeVar("F", bound=Callable[..., Any])

_NAMED_PAIRS_ATTR = "__jetpl_named_pairs__"


def named_pairs(fn: F) -> F:
    """
    Помечает функцию, принимающую именованные аргументы @name
    как хвостовые позиционные пары: ..., "name", value.
    """
    setattr(fn, _NAMED_PAIRS_ATTR, True)
    return fn


def accepts_named_pairs(fn: Any) -> bool:
    return bool(getattr(fn, _NAMED_PAIRS_ATTR, False))


def _require_str(value: Any, function: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{function}: expected string, got {type(value).__name__}")
    return value


def lower(s: str) -> str:
    return _require_str(s, "lower").lower()


def upper(s: str) -> str:
    return _require_str(s, "upper").upper()


def has_prefix(s: str, prefix: str) -> bool:
    return _require_str(s, "hasPrefix").startswith(_require_str(prefix, "hasPrefix"))


def has_suffix(s: str, suffix: str) -> bool:
    return _require_str(s, "hasSuffix").endswith(_require_str(suffix, "hasSuffix"))


def repeat(s: str, count: int) -> str:
    """Повторяет строку count раз; отрицательное количество — ошибка."""
    if isinstance(count, bool) or not isinstance(count, int):
        raise TypeError(f"repeat: count must be int, got {type(count).__name__}")
    if count < 0:
        raise ValueError("repeat: negative repeat count")
    return _require_str(s, "repeat") * count


def replace(s: str, old: str, new: str, n: int = -1) -> str:
    """Заменяет первые n вхождений old на new (n < 0 — все)."""
    if isinstance(n, bool) or not isinstance(n, int):
        raise TypeError(f"replace: n must be int, got {type(n).__name__}")
    return _require_str(s, "replace").replace(
        _require_str(old, "replace"), _require_str(new, "replace"), n
    )


@named_pairs
def make_map(*args: Any) -> Dict[str, Any]:
    """
    Строит отображение из чередующихся ключей и значений.

    Ключи приводятся к строке. Нечётное число аргументов — ошибка.
    """
    if len(args) % 2 != 0:
        raise ValueError(f"map: expected an even number of arguments, got {len(args)}")
    return {to_string(args[i]): args[i + 1] for i in range(0, len(args), 2)}


DEFAULT_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "lower": lower,
    "upper": upper,
    "hasPrefix": has_prefix,
    "hasSuffix": has_suffix,
    "repeat": repeat,
    "replace": replace,
    "map": make_map,
}


__all__ = [
    "named_pairs",
    "accepts_named_pairs",
    "lower",
    "upper",
    "has_prefix",
    "has_suffix",
    "repeat",
    "replace",
    "make_map",
    "DEFAULT_FUNCTIONS",
]
