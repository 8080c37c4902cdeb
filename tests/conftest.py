from pathlib import Path

import pytest

from jetpl.template import DictLoader, TemplateSet
from tests.infrastructure.models import User


@pytest.fixture
def template_set() -> TemplateSet:
    """Пустой набор шаблонов без загрузчика."""
    return TemplateSet()


@pytest.fixture
def user() -> User:
    return User("José Santos", "email@example.com")


@pytest.fixture
def users() -> list:
    return [
        User("Mario Santos", "mario@gmail.com"),
        User("Joel Silva", "joelsilva@gmail.com"),
        User("Luis Santana", "luis.santana@gmail.com"),
    ]


@pytest.fixture
def dict_set():
    """Фабрика наборов шаблонов поверх DictLoader."""
    def _make(templates, **kwargs) -> TemplateSet:
        return TemplateSet(loader=DictLoader(templates), **kwargs)
    return _make


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    """Каталог шаблонов на диске с базовым, дочерним и включаемым шаблоном."""
    (tmp_path / "layouts").mkdir()
    (tmp_path / "layouts" / "base.jet").write_text(
        "<title>{{ block title }}Default{{ end }}</title>{{ yield body . }}", encoding="utf-8"
    )
    (tmp_path / "page.jet").write_text(
        '{{ extends "layouts/base" }}{{ block title }}Page{{ end }}'
        '{{ block body }}Hi {{ .Name }}{{ include "footer" }}{{ end }}',
        encoding="utf-8",
    )
    (tmp_path / "footer.html.jet").write_text("|footer", encoding="utf-8")
    return tmp_path
