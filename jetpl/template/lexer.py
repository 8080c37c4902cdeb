"""
Лексический анализатор шаблонов.

Токенизирует исходный текст шаблона, разбивая его на последовательность
токенов для последующего синтаксического анализа. Работает в два режима:
- текст вне разделителей выдаётся как есть (TEXT);
- внутри действия {{ ... }} распознаются идентификаторы, литералы и операторы.

Комментарии {* ... *} выдаются одним токеном COMMENT, чтобы принтер мог
воспроизвести их байт в байт.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator, List, Optional

from .tokens import Token, TokenType
from ..errors import LexError

logger = logging.getLogger(__name__)

ACTION_OPEN = "{{"
ACTION_CLOSE = "}}"
COMMENT_OPEN = "{*"
COMMENT_CLOSE = "*}"


class TemplateLexer:
    """
    Лексический анализатор шаблонов.

    Однопроходный, без возвратов: состояние ограничено позицией сканирования
    и флагом «внутри действия».
    """

    # Спецификация токенов внутри действия: (regex_pattern, token_type)
    # Порядок важен: более длинные операторы проверяются раньше коротких.
    _ACTION_SPECS = [
        (r'\d+\.\d+(?:[eE][+-]?\d+)?|\d+[eE][+-]?\d+|\d+', TokenType.NUMBER),
        (r'\.[A-Za-z_][A-Za-z0-9_]*', TokenType.FIELD),
        (r'\.', TokenType.DOT),
        (r'[A-Za-z_][A-Za-z0-9_]*', TokenType.IDENTIFIER),
        (r':=', TokenType.ASSIGN),
        (r'==|!=|<=|>=|&&|\|\|', TokenType.OPERATOR),
        (r'[+\-*/%<>!]', TokenType.OPERATOR),
        (r'\|', TokenType.PIPE),
        (r':', TokenType.COLON),
        (r',', TokenType.COMMA),
        (r'@', TokenType.AT),
        (r'\(', TokenType.LPAREN),
        (r'\)', TokenType.RPAREN),
        (r'\[', TokenType.LBRACKET),
        (r'\]', TokenType.RBRACKET),
    ]

    _SIMPLE_ESCAPES = {
        '\\': '\\', '"': '"', "'": "'", 'n': '\n', 't': '\t', 'r': '\r',
        'a': '\a', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0',
    }
    _HEX_ESCAPES = {'x': 2, 'u': 4, 'U': 8}

    _WHITESPACE = re.compile(r'\s+')

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.position = 0
        self.line = 1
        self.column = 1
        self._compiled_specs = [
            (re.compile(pattern), token_type)
            for pattern, token_type in self._ACTION_SPECS
        ]

    def tokenize(self) -> List[Token]:
        """
        Разбивает весь текст на токены.

        Returns:
            Список токенов, завершающийся EOF

        Raises:
            LexError: При некорректном вводе
        """
        tokens = list(self.iter_tokens())
        logger.debug("Tokenized template into %d tokens", len(tokens))
        return tokens

    def iter_tokens(self) -> Iterator[Token]:
        """
        Генератор для ленивой токенизации.

        Yields:
            Token: Очередной токен; последний всегда EOF
        """
        while self.position < self.length:
            yield from self._scan_text()
            if self.position < self.length and self.text.startswith(ACTION_OPEN, self.position):
                yield from self._scan_action()

        yield Token(TokenType.EOF, "", self.position, self.line, self.column)

    # Текстовый режим

    def _scan_text(self) -> Iterator[Token]:
        """Выдаёт текст до следующего действия и попутные комментарии."""
        while self.position < self.length:
            next_action = self.text.find(ACTION_OPEN, self.position)
            next_comment = self.text.find(COMMENT_OPEN, self.position)

            stop = self._nearest(next_action, next_comment)
            if stop is None:
                stop = self.length

            if stop > self.position:
                yield self._make_token(TokenType.TEXT, stop - self.position)

            if stop == next_comment and stop != next_action:
                yield self._scan_comment()
                continue
            return

    def _scan_comment(self) -> Token:
        end = self.text.find(COMMENT_CLOSE, self.position + len(COMMENT_OPEN))
        if end < 0:
            raise self._error("Unterminated comment")
        return self._make_token(TokenType.COMMENT, end + len(COMMENT_CLOSE) - self.position)

    @staticmethod
    def _nearest(*positions: int) -> Optional[int]:
        found = [p for p in positions if p >= 0]
        return min(found) if found else None

    # Режим действия

    def _scan_action(self) -> Iterator[Token]:
        """Токенизирует содержимое {{ ... }} включая разделители."""
        start_line, start_column, start_position = self.line, self.column, self.position
        yield self._make_token(TokenType.ACTION_START, len(ACTION_OPEN))

        while True:
            self._skip_whitespace()

            if self.position >= self.length:
                raise LexError("Unterminated action", start_position, start_line, start_column)

            if self.text.startswith(ACTION_CLOSE, self.position):
                yield self._make_token(TokenType.ACTION_END, len(ACTION_CLOSE))
                return

            char = self.text[self.position]
            if char == '"':
                yield self._scan_quoted_string()
            elif char == '`':
                yield self._scan_raw_string()
            else:
                yield self._scan_action_token()

    def _scan_action_token(self) -> Token:
        for pattern, token_type in self._compiled_specs:
            match = pattern.match(self.text, self.position)
            if match:
                matched = match.group(0)
                if token_type == TokenType.FIELD:
                    token = Token(token_type, matched[1:], self.position, self.line, self.column)
                    self._advance(len(matched))
                    return token
                return self._make_token(token_type, len(matched))

        raise self._error(f"Unexpected character '{self.text[self.position]}'")

    def _scan_quoted_string(self) -> Token:
        start_line, start_column, start_position = self.line, self.column, self.position
        chars: List[str] = []
        i = self.position + 1

        while True:
            if i >= self.length or self.text[i] == '\n':
                raise LexError("Unterminated string", start_position, start_line, start_column)
            char = self.text[i]
            if char == '"':
                i += 1
                break
            if char != '\\':
                chars.append(char)
                i += 1
                continue

            if i + 1 >= self.length:
                raise LexError("Unterminated string", start_position, start_line, start_column)
            escape = self.text[i + 1]
            if escape in self._SIMPLE_ESCAPES:
                chars.append(self._SIMPLE_ESCAPES[escape])
                i += 2
            elif escape in self._HEX_ESCAPES:
                width = self._HEX_ESCAPES[escape]
                digits = self.text[i + 2:i + 2 + width]
                if len(digits) != width or not re.fullmatch(r'[0-9A-Fa-f]+', digits):
                    raise self._error_at(f"Invalid escape sequence '\\{escape}{digits}'", i)
                code = int(digits, 16)
                if code > 0x10FFFF:
                    raise self._error_at(f"Invalid escape sequence '\\{escape}{digits}'", i)
                chars.append(chr(code))
                i += 2 + width
            else:
                raise self._error_at(f"Invalid escape sequence '\\{escape}'", i)

        token = Token(TokenType.STRING, "".join(chars), start_position, start_line, start_column)
        self._advance(i - self.position)
        return token

    def _scan_raw_string(self) -> Token:
        start_line, start_column, start_position = self.line, self.column, self.position
        end = self.text.find('`', self.position + 1)
        if end < 0:
            raise LexError("Unterminated raw string", start_position, start_line, start_column)
        token = Token(TokenType.STRING, self.text[self.position + 1:end], start_position, start_line, start_column)
        self._advance(end + 1 - self.position)
        return token

    def _skip_whitespace(self) -> None:
        match = self._WHITESPACE.match(self.text, self.position)
        if match:
            self._advance(len(match.group(0)))

    # Позиционирование

    def _make_token(self, token_type: TokenType, count: int) -> Token:
        token = Token(token_type, self.text[self.position:self.position + count],
                      self.position, self.line, self.column)
        self._advance(count)
        return token

    def _error(self, message: str) -> LexError:
        return LexError(message, self.position, self.line, self.column)

    def _error_at(self, message: str, position: int) -> LexError:
        line = self.text.count('\n', 0, position) + 1
        line_start = self.text.rfind('\n', 0, position) + 1
        return LexError(message, position, line, position - line_start + 1)

    def _advance(self, count: int) -> None:
        """
        Перемещает позицию на указанное количество символов.

        Обновляет номера строк и колонок для корректного отслеживания позиции.
        """
        end = min(self.position + count, self.length)
        chunk = self.text[self.position:end]
        newlines = chunk.count('\n')
        if newlines:
            self.line += newlines
            self.column = len(chunk) - chunk.rfind('\n')
        else:
            self.column += len(chunk)
        self.position = end


def tokenize_template(text: str) -> List[Token]:
    """Удобная функция для токенизации шаблона."""
    return TemplateLexer(text).tokenize()


__all__ = ["TemplateLexer", "tokenize_template"]
