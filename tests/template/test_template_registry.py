"""
Тесты набора шаблонов: регистрация, загрузчики, конкурентный доступ.
"""

import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from jetpl.config import EngineConfig
from jetpl.errors import ParseError, TemplateLoadError, UndefinedVariable, UnresolvedTemplate
from jetpl.template import FileSystemLoader, TemplateSet
from jetpl.template.registry import ReadWriteLock


class TestRegistration:

    def test_parse_template_stores_template(self, template_set):
        template = template_set.parse_template("hello", "Hello {{ name }}")
        assert template_set.get_template("hello") is template
        assert template_set.render("hello", {"name": "World"}) == "Hello World"

    def test_parse_failure_is_not_stored(self, template_set):
        with pytest.raises(ParseError):
            template_set.parse_template("broken", "{{ if true }}never closed")
        assert not template_set.has_template("broken")
        with pytest.raises(UnresolvedTemplate):
            template_set.get_template("broken")

    def test_load_template_failure_is_programmer_error(self, template_set, caplog):
        with caplog.at_level(logging.ERROR, logger="jetpl"):
            with pytest.raises(TemplateLoadError, match="failed to load template 'bad'") as exc_info:
                template_set.load_template("bad", "{{ 1 + }}")
        assert isinstance(exc_info.value.__cause__, ParseError)
        assert "Failed to load template 'bad'" in caplog.text

    def test_replacing_template_warns(self, template_set, caplog):
        template_set.parse_template("t", "one")
        with caplog.at_level(logging.WARNING, logger="jetpl"):
            template_set.parse_template("t", "two")
        assert "Replacing registered template 't'" in caplog.text
        assert template_set.render("t") == "two"

    def test_template_names_sorted(self, template_set):
        for name in ("b", "a", "c"):
            template_set.parse_template(name, name)
        assert template_set.template_names() == ["a", "b", "c"]

    def test_add_global_is_chainable(self, template_set):
        template_set.add_global("site", "jet").add_default("shout", lambda s: s + "!")
        assert template_set.render_string("{{ shout(site) }}") == "jet!"

    def test_add_default_replaces_builtin(self, template_set):
        template_set.add_default("upper", lambda s: "custom")
        assert template_set.render_string('{{ upper("a") }}') == "custom"


class TestRendering:

    def test_render_into_sink_returns_none(self, template_set):
        template_set.parse_template("t", "abc")
        out = io.StringIO()
        assert template_set.render("t", out=out) is None
        assert out.getvalue() == "abc"

    def test_render_string_does_not_register(self, template_set):
        assert template_set.render_string("{{ 1 + 1 }}") == "2"
        assert template_set.template_names() == []

    def test_render_string_can_reach_registered_templates(self, template_set):
        template_set.parse_template("part", "[{{ . }}]")
        assert template_set.render_string('{{ include "part" 5 }}') == "[5]"

    def test_render_string_error_names_template(self, template_set):
        with pytest.raises(UndefinedVariable, match="'<string>'"):
            template_set.render_string("{{ missing }}")

    def test_execute_writes_to_sink(self, template_set):
        template = template_set.parse_template("t", "{{ .X }}")
        out = io.StringIO()
        template_set.execute(template, out, context={"X": 1})
        assert out.getvalue() == "1"


class TestLoaders:

    def test_dict_loader(self, dict_set):
        template_set = dict_set({"base": "<{{ block a }}{{ end }}>", "child": '{{ extends "base" }}{{ block a }}x{{ end }}'})
        assert template_set.render("child") == "<x>"
        assert template_set.render("/child") == "<x>"
        assert template_set.has_template("base")
        assert not template_set.has_template("nope")

    def test_loaded_template_is_cached(self, dict_set):
        template_set = dict_set({"t": "v"})
        first = template_set.get_template("t")
        assert template_set.get_template("t") is first
        assert template_set.template_names() == ["t"]

    def test_stored_template_wins_over_loader(self, dict_set):
        template_set = dict_set({"t": "from loader"})
        template_set.parse_template("t", "stored")
        assert template_set.render("t") == "stored"

    def test_filesystem_render(self, template_dir):
        template_set = TemplateSet(template_dir)
        assert template_set.render("page", context={"Name": "X"}) == "<title>Page</title>Hi X|footer"
        assert template_set.has_template("/layouts/base")

    def test_filesystem_extension_order(self, tmp_path):
        (tmp_path / "t.jet").write_text("jet", encoding="utf-8")
        (tmp_path / "t.html.jet").write_text("html", encoding="utf-8")
        loader = FileSystemLoader(tmp_path)
        assert loader.load("t") == "jet"
        assert loader.load("t.html") == "html"
        assert loader.load("missing") is None

    def test_filesystem_custom_extensions(self, tmp_path):
        (tmp_path / "t.tpl").write_text("tpl", encoding="utf-8")
        template_set = TemplateSet(tmp_path, config=EngineConfig(extensions=[".tpl"]))
        assert template_set.render("t") == "tpl"

    def test_path_escape_is_rejected(self, template_dir):
        template_set = TemplateSet(template_dir / "layouts")
        with pytest.raises(UnresolvedTemplate, match="escapes loader root"):
            template_set.get_template("../page")

    def test_root_dir_from_config(self, template_dir):
        template_set = TemplateSet(config=EngineConfig(root_dir=str(template_dir)))
        assert template_set.render("footer") == "|footer"

    def test_development_mode_reloads(self, tmp_path):
        path = tmp_path / "t.jet"
        path.write_text("one", encoding="utf-8")
        template_set = TemplateSet(tmp_path, config=EngineConfig(development_mode=True))
        assert template_set.render("t") == "one"
        path.write_text("two", encoding="utf-8")
        assert template_set.render("t") == "two"

    def test_cached_without_development_mode(self, tmp_path):
        path = tmp_path / "t.jet"
        path.write_text("one", encoding="utf-8")
        template_set = TemplateSet(tmp_path)
        assert template_set.render("t") == "one"
        path.write_text("two", encoding="utf-8")
        assert template_set.render("t") == "one"

    def test_development_mode_falls_back_to_stored(self, tmp_path):
        template_set = TemplateSet(tmp_path, config=EngineConfig(development_mode=True))
        template_set.parse_template("mem", "memory")
        assert template_set.render("mem") == "memory"

    def test_loader_parse_error_propagates(self, dict_set):
        template_set = dict_set({"bad": "{{ end }}"})
        with pytest.raises(ParseError):
            template_set.get_template("bad")
        assert template_set.template_names() == []


class TestConcurrency:

    def test_concurrent_renders(self, template_set, users):
        template_set.parse_template("list", "{{ range u := users }}{{ u.Name }};{{ end }}")
        expected = "".join(u.Name + ";" for u in users)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: template_set.render("list", {"users": users}), range(200)))

        assert results == [expected] * 200

    def test_registration_during_renders(self, dict_set):
        templates = {f"t{i}": f"{{{{ {i} * 2 }}}}" for i in range(50)}
        template_set = dict_set(templates)

        def register(i):
            template_set.add_global(f"g{i}", i)
            template_set.parse_template(f"extra{i}", f"{{{{ g{i} }}}}")

        def render(i):
            return template_set.render(f"t{i % 50}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            writers = [pool.submit(register, i) for i in range(50)]
            readers = [pool.submit(render, i) for i in range(200)]
            rendered = [f.result() for f in readers]
            for f in writers:
                f.result()

        assert rendered == [str((i % 50) * 2) for i in range(200)]
        assert template_set.render("extra7") == "7"

    def test_writer_is_not_starved(self):
        lock = ReadWriteLock()
        written = threading.Event()
        reader_inside = threading.Event()
        release_reader = threading.Event()

        def long_reader():
            with lock.read_lock():
                reader_inside.set()
                release_reader.wait(5)

        def writer():
            with lock.write_lock():
                written.set()

        t_reader = threading.Thread(target=long_reader)
        t_reader.start()
        reader_inside.wait(5)
        t_writer = threading.Thread(target=writer)
        t_writer.start()
        assert not written.wait(0.1)
        release_reader.set()
        t_writer.join(5)
        t_reader.join(5)
        assert written.is_set()
