"""
Вычислитель шаблонов.

Обходит AST шаблона и пишет результат в приёмник вывода. Реализует
управляющие конструкции, разрешение переопределений блоков по цепочке
extends и импортам, конвейеры и вызовы функций.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from .functions import accepts_named_pairs
from .nodes import (
    ActionNode, BinaryNode, BlockNode, BoolNode, CallNode, CommentNode, ContextNode,
    ExpressionNode, ExtendsNode, FieldNode, GroupNode, IdentifierNode, IfNode,
    ImportNode, IncludeNode, IndexNode, NilNode, NumberNode, PipelineNode, RangeNode,
    StringNode, Template, TemplateNode, TextNode, UnaryNode, YieldNode,
)
from .printer import print_tree
from .protocols import OutputSink
from .scope import Scope
from .values import (
    NOT_FOUND, ValueKind, arithmetic, compare, describe, get_field, get_index,
    is_truthy, iterate, kind_of, negate, to_string,
)
from ..config import max_depth_ceiling
from ..errors import (
    CallError, EvalError, RecursionLimitExceeded, UndefinedBlock,
    UndefinedVariable, UnresolvedTemplate,
)

if TYPE_CHECKING:
    from .registry import TemplateSet

logger = logging.getLogger(__name__)

_ARITHMETIC_OPS = frozenset({"+", "-", "*", "/", "%"})
_COMPARISON_OPS = frozenset({"==", "!=", "<", "<=", ">", ">="})

BlockTable = Mapping[str, BlockNode]


class Evaluator:
    """
    Вычислитель одного рендера.

    Состояние (скоуп, контекст, стек таблиц блоков, глубина) живёт
    в экземпляре, поэтому один Evaluator обслуживает один вызов execute.
    """

    def __init__(self, template_set: TemplateSet):
        self.template_set = template_set
        self.bridge = template_set.bridge
        # Общий предел вложенности всех конструкций, включая if и range
        self.nesting_limit = max_depth_ceiling()
        self.max_depth = min(template_set.config.max_depth, self.nesting_limit)

        self._out: Optional[OutputSink] = None
        self._variables: Dict[str, Any] = {}
        self._scope = Scope()
        self._context: Any = None
        self._blocks: List[BlockTable] = []
        self._depth = 0
        self._nesting = 0
        self._template_name = ""

        self._expression_handlers: Dict[type, Callable[[Any], Any]] = {
            NilNode: lambda n: None,
            BoolNode: lambda n: n.value,
            NumberNode: lambda n: n.value,
            StringNode: lambda n: n.value,
            ContextNode: lambda n: self._context,
            IdentifierNode: self._eval_identifier,
            FieldNode: self._eval_field,
            IndexNode: lambda n: get_index(self.evaluate(n.target), self.evaluate(n.index)),
            GroupNode: lambda n: self.evaluate(n.expression),
            UnaryNode: self._eval_unary,
            BinaryNode: self._eval_binary,
            CallNode: lambda n: self._call(n, ()),
            PipelineNode: self._eval_pipeline,
        }

    def execute(
        self,
        template: Template,
        out: OutputSink,
        variables: Optional[Mapping[str, Any]] = None,
        context: Any = None,
    ) -> None:
        """
        Выполняет шаблон.

        Точка входа — корень цепочки extends; блоки берутся из самого
        производного шаблона, затем из его импортов, затем из родителей.

        Raises:
            EvalError: При ошибке выполнения (уже записанный вывод не откатывается)
        """
        chain = self._resolve_chain(template)
        entry = chain[-1]
        logger.debug("Executing template '%s' (entry '%s')", template.name, entry.name)

        self._out = out
        self._variables = dict(variables or {})
        self._scope = Scope(self._variables)
        self._context = context
        self._blocks = [self._collect_blocks(chain)]
        self._depth = 0
        self._nesting = 0
        self._template_name = entry.name

        self._execute_nodes(entry.root)

    # ------------------------------------------------------------------
    # Композиция шаблонов
    # ------------------------------------------------------------------

    def _resolve_chain(self, template: Template) -> List[Template]:
        """Цепочка extends от самого производного шаблона к корню."""
        chain = [template]
        seen = {template.name}
        current = template
        while current.extends is not None:
            parent_name = current.extends
            if parent_name in seen:
                raise UnresolvedTemplate(parent_name, reason="extends cycle", template=current.name)
            current = self.template_set.get_template(parent_name)
            seen.add(parent_name)
            chain.append(current)
        return chain

    def _collect_blocks(self, chain: List[Template]) -> BlockTable:
        """Таблица блоков: первое определение имени выигрывает."""
        table: Dict[str, BlockNode] = {}
        visited: set = set()
        for template in chain:
            self._add_blocks(template, table, visited)
        return table

    def _add_blocks(self, template: Template, table: Dict[str, BlockNode], visited: set) -> None:
        if template.name in visited:
            return  # цикл импортов
        visited.add(template.name)

        for name, block in template.blocks.items():
            table.setdefault(name, block)
        for import_name in template.imports:
            self._add_blocks(self.template_set.get_template(import_name), table, visited)

    def _lookup_block(self, name: str) -> Optional[BlockNode]:
        for table in reversed(self._blocks):
            block = table.get(name)
            if block is not None:
                return block
        return None

    # ------------------------------------------------------------------
    # Узлы шаблона
    # ------------------------------------------------------------------

    def _execute_nodes(self, nodes: Tuple[TemplateNode, ...]) -> None:
        for node in nodes:
            self._execute_node(node)

    def _execute_node(self, node: TemplateNode) -> None:
        if isinstance(node, TextNode):
            self._write(node.text)
        elif isinstance(node, ActionNode):
            self._write(to_string(self.evaluate(node.pipeline)))
        elif isinstance(node, IfNode):
            self._execute_if(node)
        elif isinstance(node, RangeNode):
            self._execute_range(node)
        elif isinstance(node, BlockNode):
            self._execute_block(node)
        elif isinstance(node, YieldNode):
            self._execute_yield(node)
        elif isinstance(node, IncludeNode):
            self._execute_include(node)
        elif isinstance(node, (CommentNode, ImportNode, ExtendsNode)):
            pass  # не дают вывода
        else:
            raise EvalError(f"Unknown node type: {type(node).__name__}", self._template_name)

    def _execute_if(self, node: IfNode) -> None:
        body = self._select_branch(node)
        if body is not None:
            with self._nested(counted=False):
                self._execute_nodes(body)

    def _select_branch(self, node: IfNode) -> Optional[Tuple[TemplateNode, ...]]:
        if is_truthy(self.evaluate(node.condition)):
            return node.body
        for branch in node.elifs:
            if is_truthy(self.evaluate(branch.condition)):
                return branch.body
        return node.else_body

    def _execute_range(self, node: RangeNode) -> None:
        """
        Цикл range.

        Без объявленных переменных текущий элемент становится контекстом `.`;
        с одной переменной она получает элемент (значение для отображений),
        с двумя — индекс/ключ и элемент.
        """
        source = self.evaluate(node.source)
        with self._nested(counted=False):
            self._execute_iterations(node, source)

    def _execute_iterations(self, node: RangeNode, source: Any) -> None:
        empty = True
        for key, item in iterate(source):
            empty = False
            bindings: Dict[str, Any] = {}
            if node.key_var is not None:
                bindings[node.key_var] = key
            if node.value_var is not None:
                bindings[node.value_var] = item

            with self._scope.frame(bindings):
                if node.value_var is None:
                    with self._bind_context(item):
                        self._execute_nodes(node.body)
                else:
                    self._execute_nodes(node.body)

        if empty and node.else_body is not None:
            self._execute_nodes(node.else_body)

    def _execute_block(self, node: BlockNode) -> None:
        """Блок, встреченный при обходе: выполняется самое производное определение."""
        block = self._lookup_block(node.name) or node
        argument = self._context if node.expression is None else self.evaluate(node.expression)
        self._run_block(block, argument)

    def _execute_yield(self, node: YieldNode) -> None:
        block = self._lookup_block(node.name)
        if block is None:
            raise UndefinedBlock(node.name, self._template_name)
        argument = self._context if node.expression is None else self.evaluate(node.expression)
        self._run_block(block, argument)

    def _run_block(self, block: BlockNode, argument: Any) -> None:
        with self._nested(), self._scope.frame(), self._bind_context(argument):
            self._execute_nodes(block.body)

    def _execute_include(self, node: IncludeNode) -> None:
        """
        Включение шаблона: новый скоуп с переменными вызова рендера,
        тот же контекст (или значение выражения), таблица блоков
        включаемого шаблона поверх таблицы включающего.
        """
        target = self.template_set.get_template(node.name)
        chain = self._resolve_chain(target)
        entry = chain[-1]
        context = self._context if node.expression is None else self.evaluate(node.expression)

        saved_scope, saved_name = self._scope, self._template_name
        self._blocks.append(self._collect_blocks(chain))
        self._scope = Scope(self._variables)
        self._template_name = entry.name
        try:
            with self._nested(), self._bind_context(context):
                self._execute_nodes(entry.root)
        finally:
            self._blocks.pop()
            self._scope = saved_scope
            self._template_name = saved_name

    # ------------------------------------------------------------------
    # Выражения
    # ------------------------------------------------------------------

    def evaluate(self, node: ExpressionNode) -> Any:
        """Вычисляет выражение в текущем скоупе и контексте."""
        handler = self._expression_handlers.get(type(node))
        if handler is None:
            raise EvalError(f"Unknown expression type: {type(node).__name__}", self._template_name)
        return handler(node)

    def _eval_identifier(self, node: IdentifierNode) -> Any:
        """Поиск имени: скоуп → глобальные имена набора → встроенные функции."""
        value = self._scope.lookup(node.name)
        if value is NOT_FOUND:
            value = self.template_set.lookup_global(node.name)
        if value is NOT_FOUND:
            raise UndefinedVariable(node.name, self._template_name)
        return value

    def _eval_field(self, node: FieldNode) -> Any:
        target = self._context if node.target is None else self.evaluate(node.target)
        return get_field(target, node.name, self.bridge)

    def _eval_unary(self, node: UnaryNode) -> Any:
        operand = self.evaluate(node.operand)
        if node.operator == "!":
            return not is_truthy(operand)
        return negate(operand)

    def _eval_binary(self, node: BinaryNode) -> Any:
        operator = node.operator

        # Короткое вычисление: правый операнд не вычисляется без необходимости
        if operator == "&&":
            return is_truthy(self.evaluate(node.left)) and is_truthy(self.evaluate(node.right))
        if operator == "||":
            return is_truthy(self.evaluate(node.left)) or is_truthy(self.evaluate(node.right))

        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if operator in _ARITHMETIC_OPS:
            return arithmetic(operator, left, right)
        if operator in _COMPARISON_OPS:
            return compare(operator, left, right)
        raise EvalError(f"Unknown binary operator: {operator}", self._template_name)

    def _eval_pipeline(self, node: PipelineNode) -> Any:
        value = self.evaluate(node.head)
        for call in node.filters:
            value = self._call(call, (value,))
        return value

    # ------------------------------------------------------------------
    # Вызовы
    # ------------------------------------------------------------------

    def _call(self, node: CallNode, leading: Tuple[Any, ...]) -> Any:
        """
        Вызов функции или метода.

        leading — неявные первые аргументы (значение конвейера).
        """
        callee = node.callee

        if isinstance(callee, FieldNode):
            name = callee.name
            target = self._context if callee.target is None else self.evaluate(callee.target)
            if kind_of(target) == ValueKind.OBJECT:
                method = self.bridge.resolve_method(target, name)
                if method is not NOT_FOUND:
                    args, kwargs = self._bind_arguments(method, node, leading, name)
                    return self._invoke(
                        name, lambda: self.bridge.invoke_method(target, name, args, kwargs)
                    )
            function = get_field(target, name, self.bridge, prefer_method=True)
        elif isinstance(callee, IdentifierNode):
            name = callee.name
            function = self._eval_identifier(callee)
        else:
            name = print_tree(callee)
            function = self.evaluate(callee)

        if not callable(function):
            raise CallError(name, f"{describe(function)} is not callable", self._template_name)

        args, kwargs = self._bind_arguments(function, node, leading, name)
        return self._invoke(name, lambda: function(*args, **kwargs))

    def _bind_arguments(
        self,
        function: Any,
        node: CallNode,
        leading: Tuple[Any, ...],
        name: str,
    ) -> Tuple[List[Any], Dict[str, Any]]:
        """
        Раскладывает аргументы вызова.

        Именованные аргументы передаются как kwargs, а функциям,
        помеченным @named_pairs, как хвостовые позиционные пары.
        """
        args: List[Any] = list(leading)
        named: List[Tuple[str, Any]] = []
        for argument in node.args:
            value = self.evaluate(argument.value)
            if argument.name is None:
                args.append(value)
            else:
                named.append((argument.name, value))

        kwargs: Dict[str, Any] = {}
        if accepts_named_pairs(function):
            for arg_name, value in named:
                args.extend((arg_name, value))
            return args, kwargs

        for arg_name, value in named:
            if arg_name in kwargs:
                raise CallError(name, f"duplicate named argument '{arg_name}'", self._template_name)
            kwargs[arg_name] = value
        return args, kwargs

    def _invoke(self, name: str, thunk: Callable[[], Any]) -> Any:
        """Вызывает хост-функцию; её исключения становятся CallError."""
        try:
            return thunk()
        except EvalError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            raise CallError(name, message, self._template_name) from e

    # ------------------------------------------------------------------
    # Вспомогательные методы
    # ------------------------------------------------------------------

    def _write(self, text: str) -> None:
        if text:
            self._out.write(text)

    @contextmanager
    def _bind_context(self, value: Any) -> Iterator[None]:
        saved = self._context
        self._context = value
        try:
            yield
        finally:
            self._context = saved

    @contextmanager
    def _nested(self, counted: bool = True) -> Iterator[None]:
        """
        Учитывает вложенность конструкций.

        Все конструкции идут в общий предел nesting_limit, а include/yield/block
        (counted) ещё и в max_depth.
        """
        if self._nesting >= self.nesting_limit:
            raise RecursionLimitExceeded(self.nesting_limit, self._template_name)
        if counted and self._depth >= self.max_depth:
            raise RecursionLimitExceeded(self.max_depth, self._template_name)
        self._nesting += 1
        if counted:
            self._depth += 1
        try:
            yield
        finally:
            self._nesting -= 1
            if counted:
                self._depth -= 1


__all__ = ["Evaluator"]
