"""
Конфигурация движка шаблонов.

EngineConfig читается из YAML (ruamel.yaml) с проверкой типов:
неизвестные ключи и значения неверного типа дают ConfigLoadError
с путём поля ($.max_depth).
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigLoadError

logger = logging.getLogger(__name__)

_YAML_SAFE = YAML(typ="safe")

DEFAULT_EXTENSIONS = (".jet", ".html.jet", ".jet.html")

# Кадры стека Python на один уровень вложенности конструкций и запас
# кадров под вычисление выражений и вызывающий код
FRAMES_PER_LEVEL = 4
RESERVED_FRAMES = 400


def max_depth_ceiling() -> int:
    """Наибольшая глубина вложенности, достижимая без переполнения стека Python."""
    return max(1, (sys.getrecursionlimit() - RESERVED_FRAMES) // FRAMES_PER_LEVEL)


@dataclass
class EngineConfig:
    """Параметры TemplateSet."""
    # Предельная глубина вложенности include/yield/block (не больше max_depth_ceiling())
    max_depth: int = 64
    # Расширения, которые пробует FileSystemLoader
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    # Перечитывать шаблоны из загрузчика при каждом get_template
    development_mode: bool = False
    # Корневой каталог шаблонов
    root_dir: Optional[str] = None


def _err(path: str, msg: str) -> ConfigLoadError:
    logger.debug("Config error at %s: %s", path, msg)
    return ConfigLoadError(f"{path}: {msg}")


def _coerce_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _err(path, f"expected int, got {type(value).__name__}")
    return value


def _coerce_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise _err(path, f"expected bool, got {type(value).__name__}")
    return value


def _coerce_optional_str(value: Any, path: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _err(path, f"expected str or null, got {type(value).__name__}")
    return value


def _coerce_str_list(value: Any, path: str) -> List[str]:
    if not isinstance(value, (list, tuple)):
        raise _err(path, f"expected list, got {type(value).__name__}")
    items: List[str] = []
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise _err(f"{path}[{i}]", f"expected str, got {type(item).__name__}")
        items.append(item)
    return items


_COERCERS = {
    "max_depth": _coerce_int,
    "extensions": _coerce_str_list,
    "development_mode": _coerce_bool,
    "root_dir": _coerce_optional_str,
}


def config_from_mapping(data: Optional[Mapping[str, Any]], *, path: str = "$") -> EngineConfig:
    """
    Строит EngineConfig из отображения.

    Raises:
        ConfigLoadError: Неизвестный ключ или значение неверного типа
    """
    if data is None:
        return EngineConfig()
    if not isinstance(data, Mapping):
        raise _err(path, f"expected mapping, got {type(data).__name__}")

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(str(k) for k in data if k not in known)
    if unknown:
        raise _err(path, f"unknown keys: {', '.join(unknown)}")

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        kwargs[key] = _COERCERS[key](value, f"{path}.{key}")

    config = EngineConfig(**kwargs)
    if config.max_depth < 1:
        raise _err(f"{path}.max_depth", "must be >= 1")
    ceiling = max_depth_ceiling()
    if config.max_depth > ceiling:
        raise _err(f"{path}.max_depth", f"must be <= {ceiling}")
    return config


def load_yaml_value(path: Path) -> Any:
    """
    Читает YAML-файл с произвольным корнем (пустой файл → None).

    Raises:
        ConfigLoadError: Файл не читается или некорректен
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(f"{path}: cannot read file: {e}") from e
    try:
        return _YAML_SAFE.load(text)
    except YAMLError as e:
        raise ConfigLoadError(f"{path}: invalid YAML: {e}") from e


def load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """
    Читает YAML-файл, корень которого — отображение (пустой файл → {}).

    Raises:
        ConfigLoadError: Файл не читается, некорректен или корень не отображение
    """
    data = load_yaml_value(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"{path}: expected mapping at top level, got {type(data).__name__}")
    return data


def load_config(path: Path | str) -> EngineConfig:
    """Загружает EngineConfig из YAML-файла."""
    path = Path(path)
    logger.debug("Loading engine config from %s", path)
    data = load_yaml_mapping(path)
    try:
        return config_from_mapping(data)
    except ConfigLoadError as e:
        raise ConfigLoadError(f"{path}: {e}") from e


__all__ = [
    "EngineConfig",
    "DEFAULT_EXTENSIONS",
    "config_from_mapping",
    "max_depth_ceiling",
    "load_config",
    "load_yaml_mapping",
    "load_yaml_value",
]
