"""
AST-узлы шаблона.

Определяет иерархию неизменяемых классов узлов для представления
структуры шаблонов и выражений. Дочерние списки хранятся кортежами,
поэтому деревья можно безопасно разделять между потоками и сравнивать через ==.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union


# ---------------------------------------------------------------------------
# Выражения
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExpressionNode:
    """Базовый класс для всех узлов выражений."""
    pass


@dataclass(frozen=True)
class NilNode(ExpressionNode):
    """Литерал nil."""
    pass


@dataclass(frozen=True)
class BoolNode(ExpressionNode):
    """Литерал true/false."""
    value: bool


@dataclass(frozen=True)
class NumberNode(ExpressionNode):
    """
    Числовой литерал.

    Хранит исходное написание для воспроизведения принтером.
    """
    value: Union[int, float]
    text: str


@dataclass(frozen=True)
class StringNode(ExpressionNode):
    """Строковый литерал (значение уже раскодировано)."""
    value: str


@dataclass(frozen=True)
class ContextNode(ExpressionNode):
    """Текущий контекст: `.`"""
    pass


@dataclass(frozen=True)
class IdentifierNode(ExpressionNode):
    """Имя переменной или функции."""
    name: str


@dataclass(frozen=True)
class FieldNode(ExpressionNode):
    """
    Обращение к полю: target.name

    target=None означает поле текущего контекста (`.name`).
    """
    target: Optional[ExpressionNode]
    name: str


@dataclass(frozen=True)
class IndexNode(ExpressionNode):
    """Индексация: target[index]"""
    target: ExpressionNode
    index: ExpressionNode


@dataclass(frozen=True)
class GroupNode(ExpressionNode):
    """Явная группировка в скобках: (expression)"""
    expression: ExpressionNode


@dataclass(frozen=True)
class UnaryNode(ExpressionNode):
    """Унарная операция: !x или -x"""
    operator: str
    operand: ExpressionNode


@dataclass(frozen=True)
class BinaryNode(ExpressionNode):
    """
    Бинарная операция: left op right

    Арифметика (+ - * / %), сравнения (== != < <= > >=) и логика (&& ||).
    """
    operator: str
    left: ExpressionNode
    right: ExpressionNode


@dataclass(frozen=True)
class Argument:
    """Аргумент вызова; name задан для именованной формы @name."""
    name: Optional[str]
    value: ExpressionNode


@dataclass(frozen=True)
class CallNode(ExpressionNode):
    """
    Вызов функции или метода: f(x, y) или f: x, y

    colon_form помнит синтаксис вызова, но не участвует в сравнении.
    """
    callee: ExpressionNode
    args: Tuple[Argument, ...] = ()
    colon_form: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class PipelineNode(ExpressionNode):
    """
    Конвейер: head | filter1 | filter2: arg

    Каждый фильтр получает предыдущее значение первым аргументом.
    """
    head: ExpressionNode
    filters: Tuple[CallNode, ...]


# ---------------------------------------------------------------------------
# Узлы шаблона
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TemplateNode:
    """Базовый класс для всех узлов AST шаблона."""
    pass


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """
    Обычный текстовый контент в шаблоне.

    Представляет статический текст, который не требует обработки
    и выводится в результат как есть.
    """
    text: str


@dataclass(frozen=True)
class CommentNode(TemplateNode):
    """Комментарий {* ... *}. Ничего не выводит, хранится для принтера."""
    text: str


@dataclass(frozen=True)
class ActionNode(TemplateNode):
    """Действие {{ pipeline }}: вычислить и вывести."""
    pipeline: ExpressionNode


@dataclass(frozen=True)
class ElseIfBranch:
    """Ветка {{else if condition}}."""
    condition: ExpressionNode
    body: Tuple[TemplateNode, ...]


@dataclass(frozen=True)
class IfNode(TemplateNode):
    """
    Условный блок {{if}} ... {{else if}} ... {{else}} ... {{end}}.
    """
    condition: ExpressionNode
    body: Tuple[TemplateNode, ...]
    elifs: Tuple[ElseIfBranch, ...] = ()
    else_body: Optional[Tuple[TemplateNode, ...]] = None


@dataclass(frozen=True)
class RangeNode(TemplateNode):
    """
    Цикл {{range [k, v :=] source}} ... {{else}} ... {{end}}.

    При одной объявленной переменной она хранится в value_var.
    """
    source: ExpressionNode
    key_var: Optional[str]
    value_var: Optional[str]
    body: Tuple[TemplateNode, ...]
    else_body: Optional[Tuple[TemplateNode, ...]] = None


@dataclass(frozen=True)
class BlockNode(TemplateNode):
    """Именованный переопределяемый блок {{block name [expr]}} ... {{end}}."""
    name: str
    expression: Optional[ExpressionNode]
    body: Tuple[TemplateNode, ...]


@dataclass(frozen=True)
class YieldNode(TemplateNode):
    """Вызов блока {{yield name [expr]}}."""
    name: str
    expression: Optional[ExpressionNode]


@dataclass(frozen=True)
class ExtendsNode(TemplateNode):
    """Наследование {{extends "name"}}."""
    name: str


@dataclass(frozen=True)
class ImportNode(TemplateNode):
    """Импорт блоков {{import "name"}}."""
    name: str


@dataclass(frozen=True)
class IncludeNode(TemplateNode):
    """Включение шаблона {{include "name" [expr]}}."""
    name: str
    expression: Optional[ExpressionNode] = None


# Алиас для списка узлов (AST)
TemplateAST = Tuple[TemplateNode, ...]


@dataclass(frozen=True, eq=False)
class Template:
    """
    Разобранный шаблон.

    Неизменяем после парсинга: root и imports — кортежи,
    blocks — read-only отображение имя → BlockNode.
    """
    name: str
    root: TemplateAST
    extends: Optional[str] = None
    imports: Tuple[str, ...] = ()
    blocks: Mapping[str, BlockNode] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.blocks, MappingProxyType):
            object.__setattr__(self, "blocks", MappingProxyType(dict(self.blocks)))

    def same_tree(self, other: "Template") -> bool:
        """Структурное сравнение деревьев (без учёта имени)."""
        return (
            self.root == other.root
            and self.extends == other.extends
            and self.imports == other.imports
        )

    def __str__(self) -> str:
        from .printer import print_tree
        return print_tree(self)


__all__ = [
    "ExpressionNode", "NilNode", "BoolNode", "NumberNode", "StringNode",
    "ContextNode", "IdentifierNode", "FieldNode", "IndexNode", "GroupNode",
    "UnaryNode", "BinaryNode", "Argument", "CallNode", "PipelineNode",
    "TemplateNode", "TextNode", "CommentNode", "ActionNode", "ElseIfBranch",
    "IfNode", "RangeNode", "BlockNode", "YieldNode", "ExtendsNode",
    "ImportNode", "IncludeNode", "TemplateAST", "Template",
]
