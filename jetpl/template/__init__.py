"""
Ядро шаблонизатора: лексер, парсер, принтер AST, модель значений,
вычислитель и набор шаблонов.
"""

from __future__ import annotations

from .functions import DEFAULT_FUNCTIONS, named_pairs
from .loader import DictLoader, FileSystemLoader
from .nodes import Template
from .parser import TemplateParser, parse
from .printer import TreePrinter, print_tree
from .registry import TemplateSet
from .scope import Scope
from .values import NOT_FOUND, ReflectionBridge, ValueKind

__all__ = [
    "DEFAULT_FUNCTIONS",
    "named_pairs",
    "DictLoader",
    "FileSystemLoader",
    "Template",
    "TemplateParser",
    "parse",
    "TreePrinter",
    "print_tree",
    "TemplateSet",
    "Scope",
    "NOT_FOUND",
    "ReflectionBridge",
    "ValueKind",
]
