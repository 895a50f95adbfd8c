"""Tests for feature flags and tunables."""

import pytest

from blockplace.config import settings


class TestFeatureFlags:
    """Test flag access."""

    def test_unordered_keys_off_by_default(self):
        assert settings.is_enabled('order_insensitive_template_keys') is False

    def test_unknown_flag(self):
        with pytest.raises(KeyError, match="Available flags"):
            settings.is_enabled('no_such_flag')
        with pytest.raises(KeyError):
            settings.set_flag('no_such_flag', True)

    def test_set_flag(self):
        settings.set_flag('order_insensitive_template_keys', True)
        try:
            assert settings.get_all_flags()['order_insensitive_template_keys'] is True
        finally:
            settings.set_flag('order_insensitive_template_keys', False)

    def test_get_all_flags_is_copy(self):
        flags = settings.get_all_flags()
        flags['order_insensitive_template_keys'] = True
        assert settings.is_enabled('order_insensitive_template_keys') is False


class TestTunables:
    """Test environment-driven values."""

    def test_scale_tolerance_default(self, monkeypatch):
        monkeypatch.delenv('BLOCKPLACE_SCALE_TOLERANCE', raising=False)
        assert settings.get_scale_tolerance() == settings.DEFAULT_SCALE_TOLERANCE

    def test_scale_tolerance_from_env(self, monkeypatch):
        monkeypatch.setenv('BLOCKPLACE_SCALE_TOLERANCE', '0.01')
        assert settings.get_scale_tolerance() == 0.01

    @pytest.mark.parametrize("raw", ["abc", "-1"])
    def test_scale_tolerance_invalid(self, monkeypatch, raw):
        monkeypatch.setenv('BLOCKPLACE_SCALE_TOLERANCE', raw)
        with pytest.raises(ValueError, match="BLOCKPLACE_SCALE_TOLERANCE"):
            settings.get_scale_tolerance()

    def test_parameter_appid(self, monkeypatch):
        monkeypatch.delenv('BLOCKPLACE_PARAMS_APPID', raising=False)
        assert settings.get_parameter_appid() == "BLOCKPLACE_PARAMS"
        monkeypatch.setenv('BLOCKPLACE_PARAMS_APPID', "MY_APP")
        assert settings.get_parameter_appid() == "MY_APP"
