"""
Область видимости переменных при выполнении шаблона.

Стек фреймов имя → значение. Поиск идёт от внутреннего фрейма к внешнему,
запись — только во внутренний фрейм (затенение, без изменения внешних).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .values import NOT_FOUND


class Scope:
    """
    Стек фреймов переменных одного рендера.

    Базовый фрейм создаётся в конструкторе и не снимается.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._frames: List[Dict[str, Any]] = [dict(initial or {})]

    @property
    def depth(self) -> int:
        """Количество фреймов в стеке."""
        return len(self._frames)

    def push(self, bindings: Optional[Mapping[str, Any]] = None) -> None:
        """Открывает новый фрейм с начальными привязками."""
        self._frames.append(dict(bindings or {}))

    def pop(self) -> Dict[str, Any]:
        """
        Закрывает внутренний фрейм.

        Raises:
            RuntimeError: При попытке снять базовый фрейм
        """
        if len(self._frames) == 1:
            raise RuntimeError("Cannot pop the base scope frame")
        return self._frames.pop()

    @contextmanager
    def frame(self, bindings: Optional[Mapping[str, Any]] = None) -> Iterator["Scope"]:
        """Контекстный менеджер: push при входе, pop при выходе."""
        self.push(bindings)
        try:
            yield self
        finally:
            self.pop()

    def set(self, name: str, value: Any) -> None:
        """Привязывает имя во внутреннем фрейме."""
        self._frames[-1][name] = value

    def lookup(self, name: str) -> Any:
        """Ищет имя от внутреннего фрейма к внешнему; NOT_FOUND, если нет."""
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        return NOT_FOUND

    def __contains__(self, name: str) -> bool:
        return any(name in frame for frame in self._frames)


__all__ = ["Scope"]
