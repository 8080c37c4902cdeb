from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import EngineConfig, load_config, load_yaml_mapping, load_yaml_value
from .errors import JetError
from .template import TemplateSet, parse, print_tree
from .version import tool_version

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="jetpl",
        description="Jet-style template engine",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    p.add_argument("--verbose", action="store_true", help="отладочный вывод в stderr")
    sub = p.add_subparsers(dest="cmd", required=True)

    # Общие аргументы для команд, работающих с набором шаблонов
    def add_set_options(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--root", metavar="DIR", help="каталог шаблонов (по умолчанию текущий)")
        sp.add_argument("--config", metavar="FILE", help="YAML-конфигурация движка")

    sp_render = sub.add_parser("render", help="Отрендерить шаблон в stdout")
    sp_render.add_argument("name", help="имя шаблона относительно --root")
    add_set_options(sp_render)
    sp_render.add_argument("--vars", metavar="FILE", help="YAML-файл с переменными рендера")
    sp_render.add_argument("--context", metavar="FILE", help="YAML-файл со значением контекста '.'")

    sp_parse = sub.add_parser("parse", help="Напечатать нормализованный шаблон")
    sp_parse.add_argument("file", help="путь к файлу шаблона")

    sp_check = sub.add_parser("check", help="Проверить разбор шаблонов и их ссылок")
    sp_check.add_argument("names", nargs="+", help="имена шаблонов относительно --root")
    add_set_options(sp_check)

    return p


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or os.environ.get("JETPL_DEBUG") else logging.WARNING
    root = logging.getLogger("jetpl")
    root.setLevel(level)
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        root.addHandler(h)


def _make_set(ns: argparse.Namespace) -> TemplateSet:
    config = load_config(ns.config) if ns.config else EngineConfig()
    root = ns.root or config.root_dir or str(Path.cwd())
    return TemplateSet(root, config=config)


def _read_vars(path: Optional[str]) -> Optional[Dict[str, Any]]:
    if not path:
        return None
    return load_yaml_mapping(Path(path))


def _read_context(path: Optional[str]) -> Any:
    """Контекст `.` может быть любым YAML-значением, не только отображением."""
    if not path:
        return None
    return load_yaml_value(Path(path))


def _check(template_set: TemplateSet, names: List[str]) -> int:
    """Разбирает шаблоны и их extends/import; печатает итог по каждому."""
    failures = 0
    for name in names:
        try:
            template = template_set.get_template(name)
            for ref in ([template.extends] if template.extends else []) + list(template.imports):
                template_set.get_template(ref)
        except JetError as e:
            failures += 1
            sys.stderr.write(f"{name}: {e}\n")
            continue
        sys.stdout.write(f"{name}: ok\n")
    return 2 if failures else 0


def main(argv: list[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(ns.verbose)

    try:
        if ns.cmd == "render":
            template_set = _make_set(ns)
            text = template_set.render(ns.name, _read_vars(ns.vars), _read_context(ns.context))
            sys.stdout.write(text)
            return 0

        if ns.cmd == "parse":
            path = Path(ns.file)
            if not path.is_file():
                raise ValueError(f"Template file not found: {path}")
            template = parse(path.name, path.read_text(encoding="utf-8"))
            sys.stdout.write(print_tree(template))
            return 0

        if ns.cmd == "check":
            return _check(_make_set(ns), ns.names)

    except (JetError, ValueError) as e:
        logger.debug("Command '%s' failed", ns.cmd, exc_info=True)
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
