"""
Тесты командной строки jetpl.
"""

import logging

import pytest

from jetpl.cli import main


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    yield
    logger = logging.getLogger("jetpl")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


class TestRender:

    def test_render_with_context(self, template_dir, capsys):
        context = template_dir / "ctx.yaml"
        context.write_text("Name: X\n", encoding="utf-8")

        code = main(["render", "page", "--root", str(template_dir), "--context", str(context)])

        assert code == 0
        assert capsys.readouterr().out == "<title>Page</title>Hi X|footer"

    def test_render_with_sequence_context(self, tmp_path, capsys):
        (tmp_path / "list.jet").write_text("{{ range . }}{{ . }};{{ end }}", encoding="utf-8")
        context = tmp_path / "items.yaml"
        context.write_text("[a, b]\n", encoding="utf-8")

        code = main(["render", "list", "--root", str(tmp_path), "--context", str(context)])

        assert code == 0
        assert capsys.readouterr().out == "a;b;"

    def test_render_with_vars(self, tmp_path, capsys):
        (tmp_path / "hello.jet").write_text("Hello {{ name }}{{ range t := tags }} #{{ t }}{{ end }}", encoding="utf-8")
        variables = tmp_path / "vars.yaml"
        variables.write_text("name: World\ntags: [a, b]\n", encoding="utf-8")

        code = main(["render", "hello", "--root", str(tmp_path), "--vars", str(variables)])

        assert code == 0
        assert capsys.readouterr().out == "Hello World #a #b"

    def test_render_with_config(self, tmp_path, capsys):
        (tmp_path / "views").mkdir()
        (tmp_path / "views" / "t.tpl").write_text("ok", encoding="utf-8")
        config = tmp_path / "jetpl.yaml"
        config.write_text(f"root_dir: {tmp_path / 'views'}\nextensions: [.tpl]\n", encoding="utf-8")

        assert main(["render", "t", "--config", str(config)]) == 0
        assert capsys.readouterr().out == "ok"

    def test_missing_template(self, tmp_path, capsys):
        code = main(["render", "nope", "--root", str(tmp_path)])
        assert code == 2
        assert "template not found: 'nope'" in capsys.readouterr().err

    def test_evaluation_error(self, tmp_path, capsys):
        (tmp_path / "bad.jet").write_text("{{ missing }}", encoding="utf-8")
        code = main(["render", "bad", "--root", str(tmp_path)])
        assert code == 2
        assert "identifier 'missing' is not available" in capsys.readouterr().err

    def test_bad_config(self, tmp_path, capsys):
        config = tmp_path / "jetpl.yaml"
        config.write_text("colour: red\n", encoding="utf-8")
        code = main(["render", "t", "--config", str(config)])
        assert code == 2
        assert "unknown keys: colour" in capsys.readouterr().err


class TestParse:

    def test_prints_normalized_template(self, tmp_path, capsys):
        path = tmp_path / "t.jet"
        path.write_text("{{if   a}}x{{end}}", encoding="utf-8")

        assert main(["parse", str(path)]) == 0
        assert capsys.readouterr().out == "{{ if a }}x{{ end }}"

    def test_syntax_error(self, tmp_path, capsys):
        path = tmp_path / "t.jet"
        path.write_text("{{ if a }}never closed", encoding="utf-8")

        assert main(["parse", str(path)]) == 2
        assert "t.jet" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["parse", str(tmp_path / "none.jet")]) == 2
        assert "Template file not found" in capsys.readouterr().err


class TestCheck:

    def test_all_ok(self, template_dir, capsys):
        code = main(["check", "page", "footer", "--root", str(template_dir)])
        assert code == 0
        assert capsys.readouterr().out == "page: ok\nfooter: ok\n"

    def test_reports_failures(self, template_dir, capsys):
        (template_dir / "orphan.jet").write_text('{{ extends "missing" }}', encoding="utf-8")

        code = main(["check", "page", "orphan", "nope", "--root", str(template_dir)])

        captured = capsys.readouterr()
        assert code == 2
        assert captured.out == "page: ok\n"
        assert "orphan: template not found: 'missing'" in captured.err
        assert "nope: template not found: 'nope'" in captured.err


class TestArguments:

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("jetpl ")

    def test_command_required(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2
