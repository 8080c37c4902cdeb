"""
Парсер шаблонов.

Преобразует последовательность токенов в AST с поддержкой условных блоков,
циклов, блоков/yield и композиции шаблонов (extends/import/include).

Структура разбирается рекурсивным спуском, выражения — по уровням приоритета.

Грамматика выражений (от низшего приоритета к высшему):
pipeline       → expression ("|" filter)*
expression     → or_expression
or_expression  → and_expression ("||" and_expression)*
and_expression → equality ("&&" equality)*
equality       → relational (("==" | "!=") relational)*
relational     → additive (("<" | "<=" | ">" | ">=") additive)*
additive       → multiplicative (("+" | "-") multiplicative)*
multiplicative → unary (("*" | "/" | "%") unary)*
unary          → ("!" | "-") unary | postfix
postfix        → primary (FIELD | "[" pipeline "]" | "(" args ")")* (":" args)?
primary        → NUMBER | STRING | "." | FIELD | IDENTIFIER | "(" pipeline ")"
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import fields
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from .lexer import TemplateLexer
from .nodes import (
    ActionNode, Argument, BinaryNode, BlockNode, BoolNode, CallNode, CommentNode,
    ContextNode, ElseIfBranch, ExpressionNode, ExtendsNode, FieldNode, GroupNode,
    IdentifierNode, IfNode, ImportNode, IncludeNode, IndexNode, NilNode, NumberNode,
    PipelineNode, RangeNode, StringNode, Template, TemplateNode, TextNode,
    UnaryNode, YieldNode,
)
from .tokens import KEYWORDS, Token, TokenType
from ..errors import ParseError

logger = logging.getLogger(__name__)

# Ключевые слова, завершающие вложенные конструкции
_TERMINATORS = frozenset({"else", "end"})

# Действия, допустимые в шаблоне с extends
_EXTENDS_ALLOWED = frozenset({"extends", "block", "import"})

_EQUALITY_OPS = ("==", "!=")
_RELATIONAL_OPS = ("<", "<=", ">", ">=")
_ADDITIVE_OPS = ("+", "-")
_MULTIPLICATIVE_OPS = ("*", "/", "%")
_UNARY_OPS = ("!", "-")

# Пределы вложенности: конструкции шаблона и глубина дерева выражения
MAX_NESTING = 50
MAX_EXPRESSION_DEPTH = 40


class TemplateParser:
    """
    Рекурсивный парсер для шаблонов.

    Обрабатывает последовательность токенов и строит Template, корректно
    обрабатывая вложенные конструкции и собирая определения блоков.
    Ссылки extends/import не резолвятся — только запоминаются имена.
    """

    def __init__(self, tokens: List[Token], name: str = ""):
        self.tokens = tokens
        self.name = name
        self.position = 0

        self._depth = 0
        self._expression_depth = 0
        self._actions_seen = 0
        self._extends: Optional[str] = None
        self._imports: List[str] = []
        self._blocks: Dict[str, BlockNode] = {}

    def parse(self) -> Template:
        """
        Парсит всю последовательность токенов.

        Returns:
            Неизменяемый Template

        Raises:
            ParseError: При ошибке синтаксического анализа
        """
        # На верхнем уровне терминаторы запрещены, _parse_list выбросит ParseError
        root, _ = self._parse_list(frozenset())

        template = Template(
            name=self.name,
            root=root,
            extends=self._extends,
            imports=tuple(self._imports),
            blocks=dict(self._blocks),
        )
        logger.debug(
            "Parsed template '%s': %d top-level nodes, %d blocks, extends=%s, imports=%s",
            self.name, len(root), len(self._blocks), self._extends, self._imports,
        )
        return template

    # ------------------------------------------------------------------
    # Структура шаблона
    # ------------------------------------------------------------------

    def _parse_list(self, terminators: FrozenSet[str]) -> Tuple[Tuple[TemplateNode, ...], Optional[str]]:
        """
        Парсит последовательность узлов до терминатора или конца ввода.

        Терминатор ({{else}}/{{end}}) не потребляется.

        Returns:
            (узлы, имя встреченного терминатора или None при EOF)
        """
        nodes: List[TemplateNode] = []

        while not self._is_at_end():
            current = self._current_token()

            if current.type == TokenType.TEXT:
                self._advance()
                nodes.append(TextNode(text=current.value))
                continue

            if current.type == TokenType.COMMENT:
                self._advance()
                nodes.append(CommentNode(text=current.value))
                continue

            if current.type != TokenType.ACTION_START:
                raise self._error(f"Unexpected token {current.type.name}", current)

            keyword_token = self._peek(1)
            if keyword_token.type == TokenType.IDENTIFIER and keyword_token.value in _TERMINATORS:
                if keyword_token.value in terminators:
                    return tuple(nodes), keyword_token.value
                raise self._error(f"Unexpected {{{{{keyword_token.value}}}}}", keyword_token)

            nodes.append(self._parse_action())

        return tuple(nodes), None

    def _parse_action(self) -> TemplateNode:
        """Парсит действие {{ ... }} и диспетчеризует по ключевому слову."""
        self._consume(TokenType.ACTION_START)
        current = self._current_token()
        keyword = current.value if current.type == TokenType.IDENTIFIER else ""

        if self._extends is not None and self._depth == 0 and keyword not in _EXTENDS_ALLOWED:
            raise self._error(
                f"Template extending '{self._extends}' may only contain block definitions",
                current,
            )

        if keyword == "extends":
            return self._parse_extends()

        self._actions_seen += 1

        if keyword == "if":
            return self._parse_if()
        if keyword == "range":
            return self._parse_range()
        if keyword == "block":
            return self._parse_block()
        if keyword == "yield":
            return self._parse_yield()
        if keyword == "import":
            return self._parse_import()
        if keyword == "include":
            return self._parse_include()

        if current.type == TokenType.ACTION_END:
            raise self._error("Empty action", current)

        pipeline = self._parse_pipeline()
        self._expect_action_end("action")
        return ActionNode(pipeline=pipeline)

    def _parse_if(self) -> IfNode:
        """Парсит {{if}} ... {{else if}} ... {{else}} ... {{end}}."""
        self._advance()  # if
        condition = self._parse_pipeline()
        self._expect_action_end("if")

        self._enter_construct()
        try:
            body, terminator = self._parse_list(_TERMINATORS)
            elifs: List[ElseIfBranch] = []
            else_body: Optional[Tuple[TemplateNode, ...]] = None

            while terminator == "else":
                self._consume_terminator("else")
                if self._current_token().is_keyword("if"):
                    self._advance()
                    elif_condition = self._parse_pipeline()
                    self._expect_action_end("else if")
                    elif_body, terminator = self._parse_list(_TERMINATORS)
                    elifs.append(ElseIfBranch(condition=elif_condition, body=elif_body))
                else:
                    self._expect_action_end("else")
                    else_body, terminator = self._parse_list(frozenset({"end"}))

            self._close_construct("if", terminator)
        finally:
            self._depth -= 1

        return IfNode(condition=condition, body=body, elifs=tuple(elifs), else_body=else_body)

    def _parse_range(self) -> RangeNode:
        """Парсит {{range [k, v :=] source}} ... {{else}} ... {{end}}."""
        self._advance()  # range
        key_var, value_var = self._parse_range_declaration()
        source = self._parse_pipeline()
        self._expect_action_end("range")

        self._enter_construct()
        try:
            body, terminator = self._parse_list(_TERMINATORS)
            else_body: Optional[Tuple[TemplateNode, ...]] = None
            if terminator == "else":
                self._consume_terminator("else")
                self._expect_action_end("else")
                else_body, terminator = self._parse_list(frozenset({"end"}))
            self._close_construct("range", terminator)
        finally:
            self._depth -= 1

        return RangeNode(source=source, key_var=key_var, value_var=value_var,
                         body=body, else_body=else_body)

    def _parse_range_declaration(self) -> Tuple[Optional[str], Optional[str]]:
        """Парсит необязательное объявление `x :=` или `k, v :=`."""
        first = self._current_token()
        if first.type != TokenType.IDENTIFIER:
            return None, None

        if self._peek(1).type == TokenType.ASSIGN:
            self._check_variable_name(first)
            self._advance()
            self._advance()
            return None, first.value

        if (self._peek(1).type == TokenType.COMMA
                and self._peek(2).type == TokenType.IDENTIFIER
                and self._peek(3).type == TokenType.ASSIGN):
            second = self._peek(2)
            self._check_variable_name(first)
            self._check_variable_name(second)
            for _ in range(4):
                self._advance()
            return first.value, second.value

        return None, None

    def _parse_block(self) -> BlockNode:
        """Парсит {{block name [expr]}} ... {{end}}."""
        self._advance()  # block
        name_token = self._consume_name("block")
        expression = self._parse_optional_argument()
        self._expect_action_end("block")

        if name_token.value in self._blocks:
            raise self._error(f"Duplicate block '{name_token.value}'", name_token)

        self._enter_construct()
        try:
            body, terminator = self._parse_list(frozenset({"end"}))
            self._close_construct("block", terminator)
        finally:
            self._depth -= 1

        block = BlockNode(name=name_token.value, expression=expression, body=body)
        self._blocks[block.name] = block
        return block

    def _parse_yield(self) -> YieldNode:
        self._advance()  # yield
        name_token = self._consume_name("yield")
        expression = self._parse_optional_argument()
        self._expect_action_end("yield")
        return YieldNode(name=name_token.value, expression=expression)

    def _parse_extends(self) -> ExtendsNode:
        """Парсит {{extends "name"}} — только первым действием шаблона."""
        keyword = self._advance()
        if self._extends is not None:
            raise self._error("Duplicate extends", keyword)
        if self._actions_seen > 0 or self._depth > 0:
            raise self._error("extends must be the first action in the template", keyword)

        name = self._consume_template_name("extends")
        self._expect_action_end("extends")
        self._extends = name
        return ExtendsNode(name=name)

    def _parse_import(self) -> ImportNode:
        keyword = self._advance()
        if self._depth > 0:
            raise self._error("import is only allowed at the top level", keyword)
        name = self._consume_template_name("import")
        self._expect_action_end("import")
        self._imports.append(name)
        return ImportNode(name=name)

    def _parse_include(self) -> IncludeNode:
        self._advance()  # include
        name = self._consume_template_name("include")
        expression = self._parse_optional_argument()
        self._expect_action_end("include")
        return IncludeNode(name=name, expression=expression)

    def _parse_optional_argument(self) -> Optional[ExpressionNode]:
        if self._current_token().type == TokenType.ACTION_END:
            return None
        return self._parse_pipeline()

    def _close_construct(self, construct: str, terminator: Optional[str]) -> None:
        """Потребляет {{end}} конструкции или сообщает о его отсутствии."""
        if terminator != "end":
            raise self._error(f"Expected {{{{end}}}} to close '{construct}'", self._current_token())
        self._consume_terminator("end")
        self._expect_action_end("end")

    def _consume_terminator(self, keyword: str) -> None:
        self._consume(TokenType.ACTION_START)
        token = self._current_token()
        if not token.is_keyword(keyword):
            raise self._error(f"Expected '{keyword}'", token)
        self._advance()

    # ------------------------------------------------------------------
    # Выражения
    # ------------------------------------------------------------------

    def _parse_pipeline(self) -> ExpressionNode:
        """Парсит конвейер: expression ("|" filter)*"""
        start = self._current_token()
        head = self._parse_expression()
        filters: List[CallNode] = []

        while self._match(TokenType.PIPE):
            filters.append(self._parse_filter())

        node = head if not filters else PipelineNode(head=head, filters=tuple(filters))
        # Цепочки бинарных операторов углубляют дерево без рекурсии парсера
        if self._expression_depth == 0 and expression_depth(node) > MAX_EXPRESSION_DEPTH:
            raise self._error("expression nesting too deep", start)
        return node

    def _parse_filter(self) -> CallNode:
        """Парсит фильтр конвейера: имя, имя: args или имя(args)."""
        current = self._current_token()
        node = self._parse_postfix()
        if isinstance(node, CallNode):
            return node
        if not isinstance(node, (IdentifierNode, FieldNode)):
            raise self._error("Expected function name after '|'", current)
        return CallNode(callee=node, args=())

    def _parse_expression(self) -> ExpressionNode:
        """Парсит полное выражение (начальный символ грамматики)."""
        return self._parse_or()

    def _parse_or(self) -> ExpressionNode:
        """Парсит выражение с оператором || (низший приоритет)."""
        left = self._parse_and()
        while self._current_token().is_operator("||"):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_and())
        return left

    def _parse_and(self) -> ExpressionNode:
        left = self._parse_equality()
        while self._current_token().is_operator("&&"):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_equality())
        return left

    def _parse_equality(self) -> ExpressionNode:
        left = self._parse_relational()
        while self._current_token().is_operator(*_EQUALITY_OPS):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_relational())
        return left

    def _parse_relational(self) -> ExpressionNode:
        left = self._parse_additive()
        while self._current_token().is_operator(*_RELATIONAL_OPS):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_additive())
        return left

    def _parse_additive(self) -> ExpressionNode:
        left = self._parse_multiplicative()
        while self._current_token().is_operator(*_ADDITIVE_OPS):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_multiplicative())
        return left

    def _parse_multiplicative(self) -> ExpressionNode:
        left = self._parse_unary()
        while self._current_token().is_operator(*_MULTIPLICATIVE_OPS):
            operator = self._advance().value
            left = BinaryNode(operator=operator, left=left, right=self._parse_unary())
        return left

    def _parse_unary(self) -> ExpressionNode:
        """Парсит унарные ! и - (правая ассоциативность)."""
        if self._current_token().is_operator(*_UNARY_OPS):
            operator = self._advance().value
            with self._nested_expression():
                return UnaryNode(operator=operator, operand=self._parse_unary())
        return self._parse_postfix()

    def _parse_postfix(self) -> ExpressionNode:
        """Парсит цепочку полей, индексов и вызовов (левоассоциативно)."""
        node = self._parse_primary()

        while True:
            current = self._current_token()

            if current.type == TokenType.FIELD:
                self._advance()
                node = FieldNode(target=node, name=current.value)
            elif current.type == TokenType.LBRACKET:
                self._advance()
                with self._nested_expression():
                    index = self._parse_pipeline()
                self._expect(TokenType.RBRACKET, "Expected ']' after index")
                node = IndexNode(target=node, index=index)
            elif current.type == TokenType.LPAREN:
                self._advance()
                with self._nested_expression():
                    args = self._parse_arguments(TokenType.RPAREN)
                self._expect(TokenType.RPAREN, "Expected ')' after arguments")
                node = CallNode(callee=node, args=args)
            elif current.type == TokenType.COLON:
                if not isinstance(node, (IdentifierNode, FieldNode)):
                    raise self._error("Unexpected ':'", current)
                self._advance()
                with self._nested_expression():
                    args = self._parse_arguments(None)
                if not args:
                    raise self._error("Expected argument after ':'", self._current_token())
                # Аргументы после двоеточия простираются до конца выражения
                return CallNode(callee=node, args=args, colon_form=True)
            else:
                return node

    def _parse_arguments(self, closing: Optional[TokenType]) -> Tuple[Argument, ...]:
        """Парсит список аргументов через запятую."""
        args: List[Argument] = []
        if closing is not None and self._current_token().type == closing:
            return ()

        while True:
            args.append(self._parse_argument())
            if not self._match(TokenType.COMMA):
                break
        return tuple(args)

    def _parse_argument(self) -> Argument:
        """Парсит аргумент: expression или @name[,] expression."""
        if self._match(TokenType.AT):
            name_token = self._expect(TokenType.IDENTIFIER, "Expected argument name after '@'")
            self._match(TokenType.COMMA)
            return Argument(name=name_token.value, value=self._parse_expression())
        return Argument(name=None, value=self._parse_expression())

    def _parse_primary(self) -> ExpressionNode:
        """Парсит первичное выражение (литералы, имена, группы в скобках)."""
        current = self._current_token()

        if current.type == TokenType.NUMBER:
            self._advance()
            return self._number_node(current)

        if current.type == TokenType.STRING:
            self._advance()
            return StringNode(value=current.value)

        if current.type == TokenType.DOT:
            self._advance()
            return ContextNode()

        if current.type == TokenType.FIELD:
            self._advance()
            return FieldNode(target=None, name=current.value)

        if current.type == TokenType.IDENTIFIER:
            self._advance()
            if current.value == "true":
                return BoolNode(value=True)
            if current.value == "false":
                return BoolNode(value=False)
            if current.value == "nil":
                return NilNode()
            if current.value in KEYWORDS:
                raise self._error(f"Unexpected keyword '{current.value}'", current)
            return IdentifierNode(name=current.value)

        if current.type == TokenType.LPAREN:
            self._advance()
            with self._nested_expression():
                expression = self._parse_pipeline()
            self._expect(TokenType.RPAREN, "Expected ')' after grouped expression")
            return GroupNode(expression=expression)

        if current.type in (TokenType.ACTION_END, TokenType.EOF):
            raise self._error("Unexpected end of action", current)
        raise self._error(f"Unexpected token '{current.value}'", current)

    def _number_node(self, token: Token) -> NumberNode:
        text = token.value
        if any(c in text for c in ".eE"):
            return NumberNode(value=float(text), text=text)
        return NumberNode(value=int(text), text=text)

    # ------------------------------------------------------------------
    # Вспомогательные методы для работы с токенами
    # ------------------------------------------------------------------

    def _current_token(self) -> Token:
        """Возвращает текущий токен без продвижения позиции."""
        return self._peek(0)

    def _peek(self, offset: int) -> Token:
        index = self.position + offset
        if index >= len(self.tokens):
            if self.tokens:
                last = self.tokens[-1]
                return Token(TokenType.EOF, "", last.position, last.line, last.column)
            return Token(TokenType.EOF, "", 0, 1, 1)
        return self.tokens[index]

    def _is_at_end(self) -> bool:
        return self._current_token().type == TokenType.EOF

    def _advance(self) -> Token:
        """Продвигает позицию и возвращает потреблённый токен."""
        token = self._current_token()
        if not self._is_at_end():
            self.position += 1
        return token

    def _match(self, token_type: TokenType) -> bool:
        """Проверяет и потребляет токен указанного типа."""
        if self._current_token().type == token_type:
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType, message: str) -> Token:
        current = self._current_token()
        if current.type != token_type:
            raise self._error(message, current)
        return self._advance()

    def _consume(self, token_type: TokenType) -> Token:
        return self._expect(token_type, f"Expected {token_type.name}")

    def _expect_action_end(self, construct: str) -> None:
        self._expect(TokenType.ACTION_END, f"Expected '}}}}' after {construct}")

    def _consume_name(self, construct: str) -> Token:
        token = self._expect(TokenType.IDENTIFIER, f"Expected block name after '{construct}'")
        if token.value in KEYWORDS:
            raise self._error(f"Invalid block name '{token.value}'", token)
        return token

    def _consume_template_name(self, construct: str) -> str:
        token = self._expect(TokenType.STRING, f"Expected template name string after '{construct}'")
        if not token.value:
            raise self._error(f"Empty template name in '{construct}'", token)
        return token.value

    def _check_variable_name(self, token: Token) -> None:
        if token.value in KEYWORDS:
            raise self._error(f"Invalid variable name '{token.value}'", token)

    def _enter_construct(self) -> None:
        """Входит в тело if/range/block; глубина ограничена MAX_NESTING."""
        if self._depth >= MAX_NESTING:
            raise self._error("nesting too deep", self._current_token())
        self._depth += 1

    @contextmanager
    def _nested_expression(self) -> Iterator[None]:
        if self._expression_depth >= MAX_EXPRESSION_DEPTH:
            raise self._error("expression nesting too deep", self._current_token())
        self._expression_depth += 1
        try:
            yield
        finally:
            self._expression_depth -= 1

    def _error(self, message: str, token: Token) -> ParseError:
        return ParseError(message, self.name, token.line, token.column)


def expression_depth(node: ExpressionNode) -> int:
    """Глубина дерева выражения (обход без рекурсии)."""
    deepest = 0
    stack = [(node, 1)]
    while stack:
        current, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in _expression_children(current))
    return deepest


def _expression_children(node: ExpressionNode) -> Iterator[ExpressionNode]:
    for f in fields(node):
        value = getattr(node, f.name)
        items = value if isinstance(value, tuple) else (value,)
        for item in items:
            if isinstance(item, Argument):
                yield item.value
            elif isinstance(item, ExpressionNode):
                yield item


def parse(name: str, source: str) -> Template:
    """
    Удобная функция: текст шаблона → Template.

    Raises:
        LexError: При ошибке токенизации
        ParseError: При синтаксической ошибке
    """
    tokens = TemplateLexer(source).tokenize()
    return TemplateParser(tokens, name).parse()


__all__ = ["TemplateParser", "parse"]
