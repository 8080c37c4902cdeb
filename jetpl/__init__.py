"""
jetpl — шаблонизатор в стиле Jet.

Шаблон компилируется в AST и выполняется над переменными вызова
и значением контекста `.`, результат пишется в текстовый приёмник.
"""

from __future__ import annotations

from .config import EngineConfig, load_config
from .errors import (
    CallError,
    EvalError,
    JetError,
    LexError,
    NotIterable,
    ParseError,
    RecursionLimitExceeded,
    TemplateLoadError,
    TypeMismatch,
    UndefinedBlock,
    UndefinedField,
    UndefinedVariable,
    UnresolvedTemplate,
)
from .template import DictLoader, FileSystemLoader, Template, TemplateSet, named_pairs, parse, print_tree

__all__ = [
    "EngineConfig",
    "load_config",
    "CallError",
    "EvalError",
    "JetError",
    "LexError",
    "NotIterable",
    "ParseError",
    "RecursionLimitExceeded",
    "TemplateLoadError",
    "TypeMismatch",
    "UndefinedBlock",
    "UndefinedField",
    "UndefinedVariable",
    "UnresolvedTemplate",
    "DictLoader",
    "FileSystemLoader",
    "Template",
    "TemplateSet",
    "named_pairs",
    "parse",
    "print_tree",
]
