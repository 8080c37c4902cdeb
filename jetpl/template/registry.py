"""
Набор шаблонов (реестр).

Хранит разобранные шаблоны по именам, глобальные переменные и функции,
таблицу встроенных функций. Недостающие шаблоны запрашивает у загрузчика.
Безопасен для конкурентных рендеров: доступ к таблицам защищён
блокировкой «много читателей, один писатель».
"""

from __future__ import annotations

import io
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .evaluator import Evaluator
from .functions import DEFAULT_FUNCTIONS
from .loader import FileSystemLoader
from .nodes import Template
from .parser import parse
from .protocols import HostBridge, OutputSink, TemplateLoader
from .values import DEFAULT_BRIDGE, NOT_FOUND
from ..config import EngineConfig
from ..errors import LexError, ParseError, TemplateLoadError, UnresolvedTemplate

logger = logging.getLogger(__name__)

STRING_TEMPLATE_NAME = "<string>"


class ReadWriteLock:
    """
    Блокировка «много читателей, один писатель».

    Ожидающий писатель не пропускает новых читателей вперёд.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TemplateSet:
    """
    Реестр шаблонов одного экземпляра движка.

    Жизненный цикл: создание → регистрация шаблонов и глобальных имён →
    обслуживание конкурентных рендеров.
    """

    def __init__(
        self,
        root_dir: Optional[Path | str] = None,
        *,
        loader: Optional[TemplateLoader] = None,
        config: Optional[EngineConfig] = None,
        bridge: Optional[HostBridge] = None,
    ):
        """
        Args:
            root_dir: Каталог шаблонов; создаёт FileSystemLoader, если loader не задан
            loader: Источник недостающих шаблонов
            config: Параметры движка
            bridge: Доступ к полям и методам объектов хоста
        """
        self.config = config or EngineConfig()
        if root_dir is None and self.config.root_dir is not None:
            root_dir = self.config.root_dir
        if loader is None and root_dir is not None:
            loader = FileSystemLoader(root_dir, self.config.extensions)

        self.loader = loader
        self.bridge = bridge or DEFAULT_BRIDGE

        self._templates: Dict[str, Template] = {}
        self._globals: Dict[str, Any] = {}
        self._defaults: Dict[str, Callable[..., Any]] = dict(DEFAULT_FUNCTIONS)
        self._lock = ReadWriteLock()

        logger.debug("TemplateSet initialized (loader=%r)", self.loader)

    # ------------------------------------------------------------------
    # Регистрация шаблонов
    # ------------------------------------------------------------------

    def parse_template(self, name: str, source: str) -> Template:
        """
        Разбирает шаблон и сохраняет его под именем name.

        Шаблон с ошибкой не сохраняется.

        Raises:
            LexError, ParseError: При ошибке разбора
        """
        template = parse(name, source)
        with self._lock.write_lock():
            if name in self._templates:
                logger.warning("Replacing registered template '%s'", name)
            self._templates[name] = template
        logger.debug("Registered template '%s'", name)
        return template

    def load_template(self, name: str, source: str) -> Template:
        """
        Регистрирует доверенный шаблон, известный на этапе разработки.

        Ошибка разбора означает ошибку программиста, поэтому выбрасывается
        TemplateLoadError, а не пользовательская ошибка.
        """
        try:
            return self.parse_template(name, source)
        except (LexError, ParseError) as e:
            logger.error("Failed to load template '%s': %s", name, e)
            raise TemplateLoadError(name, e) from e

    def get_template(self, name: str) -> Template:
        """
        Возвращает шаблон по имени.

        Сначала хранилище, затем загрузчик. В режиме разработки загрузчик
        опрашивается при каждом вызове.

        Raises:
            UnresolvedTemplate: Шаблона нет ни в хранилище, ни у загрузчика
            LexError, ParseError: Исходник от загрузчика не разбирается
        """
        if self.config.development_mode and self.loader is not None:
            source = self.loader.load(name)
            if source is not None:
                template = parse(name, source)
                with self._lock.write_lock():
                    self._templates[name] = template
                logger.debug("Reloaded template '%s' (development mode)", name)
                return template

        with self._lock.read_lock():
            template = self._templates.get(name)
        if template is not None:
            logger.debug("Template cache hit: '%s'", name)
            return template

        if self.loader is None:
            raise UnresolvedTemplate(name)
        source = self.loader.load(name)
        if source is None:
            raise UnresolvedTemplate(name)

        template = parse(name, source)
        with self._lock.write_lock():
            # Другой поток мог загрузить тот же шаблон раньше
            stored = self._templates.setdefault(name, template)
        logger.debug("Loaded template '%s' from %r", name, self.loader)
        return stored

    def has_template(self, name: str) -> bool:
        """Шаблон зарегистрирован или доступен загрузчику."""
        with self._lock.read_lock():
            if name in self._templates:
                return True
        return self.loader is not None and self.loader.load(name) is not None

    def template_names(self) -> List[str]:
        """Имена зарегистрированных шаблонов (отсортированы)."""
        with self._lock.read_lock():
            return sorted(self._templates)

    # ------------------------------------------------------------------
    # Глобальные имена
    # ------------------------------------------------------------------

    def add_global(self, name: str, value: Any) -> TemplateSet:
        """Добавляет глобальную переменную или функцию."""
        with self._lock.write_lock():
            self._globals[name] = value
        logger.debug("Added global '%s'", name)
        return self

    def add_default(self, name: str, function: Callable[..., Any]) -> TemplateSet:
        """Добавляет или заменяет встроенную функцию."""
        with self._lock.write_lock():
            self._defaults[name] = function
        logger.debug("Added default function '%s'", name)
        return self

    def lookup_global(self, name: str) -> Any:
        """Ищет имя среди глобальных, затем встроенных; NOT_FOUND, если нет."""
        with self._lock.read_lock():
            if name in self._globals:
                return self._globals[name]
            return self._defaults.get(name, NOT_FOUND)

    # ------------------------------------------------------------------
    # Выполнение
    # ------------------------------------------------------------------

    def execute(
        self,
        template: Template,
        out: OutputSink,
        variables: Optional[Mapping[str, Any]] = None,
        context: Any = None,
    ) -> None:
        """Выполняет шаблон, записывая результат в out."""
        Evaluator(self).execute(template, out, variables, context)

    def render(
        self,
        name: str,
        variables: Optional[Mapping[str, Any]] = None,
        context: Any = None,
        out: Optional[OutputSink] = None,
    ) -> Optional[str]:
        """
        Рендерит шаблон по имени.

        Returns:
            Результат как строку, если out не задан; иначе None
        """
        template = self.get_template(name)
        return self._run(template, variables, context, out)

    def render_string(
        self,
        source: str,
        variables: Optional[Mapping[str, Any]] = None,
        context: Any = None,
        out: Optional[OutputSink] = None,
        *,
        name: str = STRING_TEMPLATE_NAME,
    ) -> Optional[str]:
        """Разбирает и рендерит текст шаблона без регистрации."""
        template = parse(name, source)
        return self._run(template, variables, context, out)

    def _run(
        self,
        template: Template,
        variables: Optional[Mapping[str, Any]],
        context: Any,
        out: Optional[OutputSink],
    ) -> Optional[str]:
        if out is not None:
            self.execute(template, out, variables, context)
            return None
        buffer = io.StringIO()
        self.execute(template, buffer, variables, context)
        return buffer.getvalue()


__all__ = ["TemplateSet", "ReadWriteLock", "STRING_TEMPLATE_NAME"]
