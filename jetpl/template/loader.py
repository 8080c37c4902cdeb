"""
Загрузчики исходных текстов шаблонов.

Имена шаблонов — POSIX-пути относительно корня загрузчика; ведущий "/"
допускается и отбрасывается. Если файл с именем как есть не найден,
пробуются имена с расширениями из списка.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence

from ..config import DEFAULT_EXTENSIONS
from ..errors import UnresolvedTemplate

logger = logging.getLogger(__name__)


class FileSystemLoader:
    """Загружает шаблоны из каталога на диске."""

    def __init__(self, root: Path | str, extensions: Sequence[str] = DEFAULT_EXTENSIONS):
        self.root = Path(root).resolve()
        self.extensions = tuple(extensions)

    def load(self, name: str) -> Optional[str]:
        """
        Читает шаблон по имени.

        Returns:
            Текст шаблона или None, если файл не найден

        Raises:
            UnresolvedTemplate: Если имя указывает за пределы корня
        """
        relative = name.lstrip("/")
        if not relative:
            return None

        for candidate_name in (relative, *(relative + ext for ext in self.extensions)):
            candidate = self._resolve_inside_root(name, candidate_name)
            if candidate.is_file():
                logger.debug("Loading template '%s' from %s", name, candidate)
                return candidate.read_text(encoding="utf-8")

        return None

    def _resolve_inside_root(self, name: str, candidate_name: str) -> Path:
        """Безопасность: итоговый путь обязан лежать внутри корня."""
        path = (self.root / candidate_name).resolve()
        try:
            path.relative_to(self.root)
        except ValueError:
            raise UnresolvedTemplate(name, reason="template path escapes loader root") from None
        return path

    def __repr__(self) -> str:
        return f"FileSystemLoader({str(self.root)!r})"


class DictLoader:
    """Загрузчик из словаря имя → текст (тесты, встраивание)."""

    def __init__(self, templates: Mapping[str, str]):
        self.templates = dict(templates)

    def load(self, name: str) -> Optional[str]:
        if name in self.templates:
            return self.templates[name]
        return self.templates.get(name.lstrip("/"))


__all__ = ["FileSystemLoader", "DictLoader"]
