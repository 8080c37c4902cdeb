"""
Иерархия исключений шаблонизатора.

Все ожидаемые ошибки, которые должны показываться пользователю
как чистые сообщения (без трейсбеков), наследуются от JetError.

Ошибки программирования и баги НЕ наследуются от JetError —
они распространяются с полными трейсбеками.
"""

from __future__ import annotations

from typing import Optional


class JetError(Exception):
    """
    Базовый класс для всех пользовательских ошибок шаблонизатора.

    Сигнализирует о проблемах, которые пользователь может исправить:
    синтаксис шаблона, неверные ссылки, отсутствующие шаблоны и т.п.
    """
    pass


class LexError(JetError):
    """Ошибка лексического анализа."""

    def __init__(self, message: str, position: int, line: int, column: int):
        super().__init__(f"{message} at {line}:{column}")
        self.message = message
        self.position = position
        self.line = line
        self.column = column


class ParseError(JetError):
    """Ошибка синтаксического анализа (структура шаблона)."""

    def __init__(self, message: str, template: str = "", line: int = 0, column: int = 0):
        where = f" in '{template}'" if template else ""
        super().__init__(f"{message}{where} at {line}:{column}")
        self.message = message
        self.template = template
        self.line = line
        self.column = column


class ConfigLoadError(JetError, ValueError):
    """Ошибка загрузки конфигурации движка с указанием пути поля."""
    pass


class EvalError(JetError):
    """Ошибка выполнения шаблона."""

    def __init__(self, message: str, template: str = ""):
        where = f" (template '{template}')" if template else ""
        super().__init__(f"{message}{where}")
        self.message = message
        self.template = template


class UnresolvedTemplate(EvalError):
    """Шаблон из extends/import/include не найден или образует цикл."""

    def __init__(self, name: str, reason: str = "template not found", template: str = ""):
        super().__init__(f"{reason}: '{name}'", template)
        self.name = name


class UndefinedBlock(EvalError):
    """Блок, на который ссылается yield, не определён."""

    def __init__(self, name: str, template: str = ""):
        super().__init__(f"undefined block '{name}'", template)
        self.name = name


class UndefinedField(EvalError):
    """Обращение к несуществующему полю, ключу или индексу."""

    def __init__(self, name: str, owner: str = "", template: str = ""):
        suffix = f" on {owner}" if owner else ""
        super().__init__(f"undefined field '{name}'{suffix}", template)
        self.name = name


class UndefinedVariable(EvalError):
    """Идентификатор не найден ни в скоупе, ни среди глобальных имён."""

    def __init__(self, name: str, template: str = ""):
        super().__init__(f"identifier '{name}' is not available", template)
        self.name = name


class TypeMismatch(EvalError):
    """Операция не определена для типов операндов."""
    pass


class CallError(EvalError):
    """Ошибка вызова функции или метода."""

    def __init__(self, callee: str, message: str, template: str = ""):
        super().__init__(f"error calling '{callee}': {message}", template)
        self.callee = callee


class NotIterable(EvalError):
    """Источник range не является последовательностью или отображением."""
    pass


class RecursionLimitExceeded(EvalError):
    """Превышена допустимая глубина вложенности include/yield/block."""

    def __init__(self, depth: int, template: str = ""):
        super().__init__(f"recursion limit exceeded (max depth {depth})", template)
        self.depth = depth


class TemplateLoadError(RuntimeError):
    """
    Ошибка загрузки доверенного шаблона через TemplateSet.load_template.

    Намеренно не наследуется от JetError: означает ошибку программиста,
    а не пользовательского ввода.
    """

    def __init__(self, name: str, cause: Optional[BaseException] = None):
        super().__init__(f"failed to load template '{name}': {cause}")
        self.name = name


__all__ = [
    "JetError",
    "LexError",
    "ParseError",
    "ConfigLoadError",
    "EvalError",
    "UnresolvedTemplate",
    "UndefinedBlock",
    "UndefinedField",
    "UndefinedVariable",
    "TypeMismatch",
    "CallError",
    "NotIterable",
    "RecursionLimitExceeded",
    "TemplateLoadError",
]
