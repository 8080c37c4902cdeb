"""
Лексические типы.

Определяет типы токенов шаблона и сам токен с позиционной информацией.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class TokenType(enum.Enum):
    """Типы токенов в шаблоне."""

    # Текстовый контент вне действий
    TEXT = "TEXT"
    COMMENT = "COMMENT"                      # {* ... *} целиком

    # Разделители действий
    ACTION_START = "ACTION_START"            # {{
    ACTION_END = "ACTION_END"                # }}

    # Идентификаторы и литералы
    IDENTIFIER = "IDENTIFIER"
    FIELD = "FIELD"                          # .name
    DOT = "DOT"                              # . (контекст)
    NUMBER = "NUMBER"
    STRING = "STRING"

    # Операторы и пунктуация
    OPERATOR = "OPERATOR"                    # + - * / % == != < <= > >= && || !
    ASSIGN = "ASSIGN"                        # :=
    AT = "AT"                                # @
    COLON = "COLON"                          # :
    COMMA = "COMMA"                          # ,
    LPAREN = "LPAREN"                        # (
    RPAREN = "RPAREN"                        # )
    LBRACKET = "LBRACKET"                    # [
    RBRACKET = "RBRACKET"                    # ]
    PIPE = "PIPE"                            # |

    EOF = "EOF"


# Ключевые слова лексически являются идентификаторами, различает их парсер
KEYWORDS = frozenset({
    "if", "else", "end", "range", "block", "yield",
    "extends", "import", "include", "true", "false", "nil",
})


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией для точной диагностики ошибок.
    """
    type: TokenType
    value: str
    position: int        # Позиция в исходном тексте
    line: int           # Номер строки (начиная с 1)
    column: int         # Номер колонки (начиная с 1)

    def is_keyword(self, keyword: str) -> bool:
        return self.type == TokenType.IDENTIFIER and self.value == keyword

    def is_operator(self, *operators: str) -> bool:
        return self.type == TokenType.OPERATOR and self.value in operators

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


__all__ = ["TokenType", "Token", "KEYWORDS"]
