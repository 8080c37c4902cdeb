"""
Протоколы шаблонизатора.

Определяет интерфейсы внешних коллабораторов ядра: загрузчика исходников,
моста к объектам хост-языка и приёмника вывода.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class TemplateLoader(Protocol):
    """
    Источник исходных текстов шаблонов.

    TemplateSet обращается к загрузчику только когда шаблон с таким
    именем ещё не зарегистрирован.
    """

    def load(self, name: str) -> Optional[str]:
        """
        Возвращает исходный текст шаблона.

        Args:
            name: Имя шаблона

        Returns:
            Текст шаблона или None, если шаблон не найден
        """
        ...


@runtime_checkable
class HostBridge(Protocol):
    """
    Доступ к полям и методам произвольных объектов.

    Методы resolve_* возвращают сигнальное значение NOT_FOUND
    из jetpl.template.values, если имя не найдено.
    """

    def resolve_field(self, obj: Any, name: str) -> Any:
        """Возвращает значение поля или NOT_FOUND."""
        ...

    def resolve_method(self, obj: Any, name: str) -> Any:
        """Возвращает связанный метод или NOT_FOUND."""
        ...

    def invoke_method(
        self,
        obj: Any,
        name: str,
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
    ) -> Any:
        """
        Вызывает метод объекта.

        Raises:
            UndefinedField: Если метода нет
            Exception: Любое исключение самого метода пробрасывается как есть
        """
        ...


@runtime_checkable
class OutputSink(Protocol):
    """Приёмник вывода: любой объект с методом write(str)."""

    def write(self, text: str) -> Any:
        ...


__all__ = ["TemplateLoader", "HostBridge", "OutputSink"]
