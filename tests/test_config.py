"""
Тесты загрузки конфигурации движка.
"""

import pytest

from jetpl.config import (
    DEFAULT_EXTENSIONS, EngineConfig, config_from_mapping, load_config, load_yaml_mapping,
    load_yaml_value, max_depth_ceiling,
)
from jetpl.errors import ConfigLoadError


class TestConfigFromMapping:

    def test_defaults(self):
        config = config_from_mapping(None)
        assert config == EngineConfig()
        assert config.max_depth == 64
        assert config.extensions == list(DEFAULT_EXTENSIONS)
        assert config.development_mode is False
        assert config.root_dir is None

    def test_all_fields(self):
        config = config_from_mapping({
            "max_depth": 10,
            "extensions": [".tpl"],
            "development_mode": True,
            "root_dir": "views",
        })
        assert config == EngineConfig(max_depth=10, extensions=[".tpl"], development_mode=True, root_dir="views")

    def test_unknown_keys(self):
        with pytest.raises(ConfigLoadError, match=r"\$: unknown keys: color, size"):
            config_from_mapping({"size": 1, "color": "red"})

    @pytest.mark.parametrize("data, message", [
        ({"max_depth": "10"}, r"\$\.max_depth: expected int, got str"),
        ({"max_depth": True}, r"\$\.max_depth: expected int, got bool"),
        ({"development_mode": "yes"}, r"\$\.development_mode: expected bool, got str"),
        ({"extensions": ".jet"}, r"\$\.extensions: expected list, got str"),
        ({"extensions": [".jet", 1]}, r"\$\.extensions\[1\]: expected str, got int"),
        ({"root_dir": 5}, r"\$\.root_dir: expected str or null, got int"),
    ])
    def test_wrong_types(self, data, message):
        with pytest.raises(ConfigLoadError, match=message):
            config_from_mapping(data)

    def test_max_depth_must_be_positive(self):
        with pytest.raises(ConfigLoadError, match=r"\$\.max_depth: must be >= 1"):
            config_from_mapping({"max_depth": 0})

    def test_max_depth_is_bounded_by_stack(self):
        ceiling = max_depth_ceiling()
        assert config_from_mapping({"max_depth": ceiling}).max_depth == ceiling
        with pytest.raises(ConfigLoadError, match=rf"\$\.max_depth: must be <= {ceiling}"):
            config_from_mapping({"max_depth": ceiling + 1})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigLoadError, match="expected mapping"):
            config_from_mapping(["max_depth"])

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            config_from_mapping({"bogus": 1})


class TestYamlLoading:

    def test_load_config(self, tmp_path):
        path = tmp_path / "jetpl.yaml"
        path.write_text("max_depth: 8\nextensions: [.tpl, .jet]\ndevelopment_mode: true\n", encoding="utf-8")
        config = load_config(path)
        assert config.max_depth == 8
        assert config.extensions == [".tpl", ".jet"]
        assert config.development_mode is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == EngineConfig()

    def test_error_is_prefixed_with_path(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("max_depth: many\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(path)
        message = str(exc_info.value)
        assert message.startswith(str(path))
        assert "$.max_depth: expected int, got str" in message

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("max_depth: [1, 2\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="invalid YAML"):
            load_yaml_mapping(path)

    def test_load_any_yaml_value(self, tmp_path):
        path = tmp_path / "items.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml_value(path) == ["a", "b"]
        empty = tmp_path / "empty.yaml"
        empty.write_text("", encoding="utf-8")
        assert load_yaml_value(empty) is None

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="expected mapping at top level, got list"):
            load_yaml_mapping(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError, match="cannot read file"):
            load_yaml_mapping(tmp_path / "nope.yaml")
