"""Tests for utils/helpers.py — utility functions."""

import pytest

from utils.helpers import load_config, mask_code, normalize_mention


class TestLoadConfig:

    def test_load_config_basic(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text("key: value\nnested:\n  a: 1\n", encoding="utf-8")
        result = load_config(str(cfg))
        assert result["key"] == "value"
        assert result["nested"]["a"] == 1

    def test_load_config_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_DEFAULT", "require")
        cfg = tmp_path / "config.yaml"
        cfg.write_text("confirmation:\n  twofactor_default: ${TEST_DEFAULT}\n", encoding="utf-8")
        result = load_config(str(cfg))
        assert result["confirmation"]["twofactor_default"] == "require"

    def test_load_config_missing_env(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MISSING_VAR_XYZ", raising=False)
        cfg = tmp_path / "config.yaml"
        cfg.write_text("token: ${MISSING_VAR_XYZ}\n", encoding="utf-8")
        with pytest.raises(ValueError, match="MISSING_VAR_XYZ"):
            load_config(str(cfg))

    def test_load_config_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.yaml")

    def test_load_config_empty_file(self, tmp_path):
        cfg = tmp_path / "config.yaml"
        cfg.write_text("", encoding="utf-8")
        assert load_config(str(cfg)) == {}


class TestNormalizeMention:

    @pytest.mark.parametrize("raw", ["@Bob", "bob", " <@bob> ", "BOB"])
    def test_variants(self, raw):
        assert normalize_mention(raw) == "bob"

    def test_empty(self):
        assert normalize_mention("") == ""
        assert normalize_mention(None) == ""


class TestMaskCode:

    def test_mask(self):
        assert mask_code("ab12cd") == "ab****"

    def test_short(self):
        assert mask_code("a") == "*"
        assert mask_code("") == ""
