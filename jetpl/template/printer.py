"""
Принтер AST шаблонов.

Восстанавливает из дерева текст шаблона, который заново разбирается в
эквивалентное дерево. Текст и комментарии воспроизводятся байт в байт,
пробелы внутри действий нормализуются.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Union

from .nodes import (
    ActionNode, Argument, BinaryNode, BlockNode, BoolNode, CallNode, CommentNode,
    ContextNode, ExpressionNode, ExtendsNode, FieldNode, GroupNode, IdentifierNode,
    IfNode, ImportNode, IncludeNode, IndexNode, NilNode, NumberNode, PipelineNode,
    RangeNode, StringNode, Template, TemplateNode, TextNode, UnaryNode, YieldNode,
)

_ESCAPES = {
    '\\': '\\\\', '"': '\\"', '\n': '\\n', '\t': '\\t', '\r': '\\r',
    '\a': '\\a', '\b': '\\b', '\f': '\\f', '\v': '\\v',
}


def quote_string(value: str) -> str:
    """Оборачивает строку в двойные кавычки с экранированием."""
    parts = []
    for char in value:
        if char in _ESCAPES:
            parts.append(_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            parts.append(f"\\x{ord(char):02x}")
        else:
            parts.append(char)
    return '"' + "".join(parts) + '"'


class TreePrinter:
    """Форматирует узлы AST в исходный текст шаблона."""

    def __init__(self):
        self._node_handlers: Dict[type, Callable[[TemplateNode], str]] = {
            TextNode: lambda n: n.text,
            CommentNode: lambda n: n.text,
            ActionNode: lambda n: self._action(self.expression(n.pipeline)),
            IfNode: self._format_if,
            RangeNode: self._format_range,
            BlockNode: self._format_block,
            YieldNode: self._format_yield,
            ExtendsNode: lambda n: self._action(f"extends {quote_string(n.name)}"),
            ImportNode: lambda n: self._action(f"import {quote_string(n.name)}"),
            IncludeNode: self._format_include,
        }
        self._expression_handlers: Dict[type, Callable[[ExpressionNode], str]] = {
            NilNode: lambda n: "nil",
            BoolNode: lambda n: "true" if n.value else "false",
            NumberNode: lambda n: n.text,
            StringNode: lambda n: quote_string(n.value),
            ContextNode: lambda n: ".",
            IdentifierNode: lambda n: n.name,
            FieldNode: self._format_field,
            IndexNode: lambda n: f"{self.expression(n.target)}[{self.expression(n.index)}]",
            GroupNode: lambda n: f"({self.expression(n.expression)})",
            UnaryNode: lambda n: f"{n.operator}{self.expression(n.operand)}",
            BinaryNode: lambda n: f"{self.expression(n.left)} {n.operator} {self.expression(n.right)}",
            CallNode: self._format_call,
            PipelineNode: self._format_pipeline,
        }

    def format(self, obj: Union[Template, TemplateNode, ExpressionNode, Iterable[TemplateNode]]) -> str:
        """Публичная точка входа."""
        if isinstance(obj, Template):
            return self.nodes(obj.root)
        if isinstance(obj, TemplateNode):
            return self.node(obj)
        if isinstance(obj, ExpressionNode):
            return self.expression(obj)
        return self.nodes(obj)

    def nodes(self, nodes: Iterable[TemplateNode]) -> str:
        return "".join(self.node(n) for n in nodes)

    def node(self, node: TemplateNode) -> str:
        handler = self._node_handlers.get(type(node))
        if handler is None:
            raise TypeError(f"No printer for node type {type(node).__name__}")
        return handler(node)

    def expression(self, node: ExpressionNode) -> str:
        handler = self._expression_handlers.get(type(node))
        if handler is None:
            raise TypeError(f"No printer for expression type {type(node).__name__}")
        return handler(node)

    # Узлы шаблона

    @staticmethod
    def _action(content: str) -> str:
        return "{{ " + content + " }}"

    def _format_if(self, node: IfNode) -> str:
        parts = [self._action(f"if {self.expression(node.condition)}"), self.nodes(node.body)]
        for branch in node.elifs:
            parts.append(self._action(f"else if {self.expression(branch.condition)}"))
            parts.append(self.nodes(branch.body))
        if node.else_body is not None:
            parts.append(self._action("else"))
            parts.append(self.nodes(node.else_body))
        parts.append(self._action("end"))
        return "".join(parts)

    def _format_range(self, node: RangeNode) -> str:
        header = "range "
        if node.key_var is not None:
            header += f"{node.key_var}, {node.value_var} := "
        elif node.value_var is not None:
            header += f"{node.value_var} := "
        header += self.expression(node.source)

        parts = [self._action(header), self.nodes(node.body)]
        if node.else_body is not None:
            parts.append(self._action("else"))
            parts.append(self.nodes(node.else_body))
        parts.append(self._action("end"))
        return "".join(parts)

    def _format_block(self, node: BlockNode) -> str:
        header = f"block {node.name}"
        if node.expression is not None:
            header += f" {self.expression(node.expression)}"
        return self._action(header) + self.nodes(node.body) + self._action("end")

    def _format_yield(self, node: YieldNode) -> str:
        content = f"yield {node.name}"
        if node.expression is not None:
            content += f" {self.expression(node.expression)}"
        return self._action(content)

    def _format_include(self, node: IncludeNode) -> str:
        content = f"include {quote_string(node.name)}"
        if node.expression is not None:
            content += f" {self.expression(node.expression)}"
        return self._action(content)

    # Выражения

    def _format_field(self, node: FieldNode) -> str:
        if node.target is None:
            return f".{node.name}"
        return f"{self.expression(node.target)}.{node.name}"

    def _format_argument(self, arg: Argument) -> str:
        value = self.expression(arg.value)
        if arg.name is not None:
            return f"@{arg.name}, {value}"
        return value

    def _format_call(self, node: CallNode) -> str:
        args = ", ".join(self._format_argument(a) for a in node.args)
        return f"{self.expression(node.callee)}({args})"

    def _format_pipeline(self, node: PipelineNode) -> str:
        parts = [self.expression(node.head)]
        for call in node.filters:
            if call.args:
                parts.append(self._format_call(call))
            else:
                parts.append(self.expression(call.callee))
        return " | ".join(parts)


_DEFAULT_PRINTER = TreePrinter()


def print_tree(obj: Union[Template, TemplateNode, ExpressionNode, Iterable[TemplateNode]]) -> str:
    """Возвращает текстовое представление шаблона, узла или выражения."""
    return _DEFAULT_PRINTER.format(obj)


__all__ = ["TreePrinter", "print_tree", "quote_string"]
