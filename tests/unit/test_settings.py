"""
Unit tests for configuration and dashboard setting validation.
"""

import pytest

from config.settings import Settings, SettingValidator


class TestSettingValidator:

    @pytest.mark.parametrize("raw, expected", [
        (True, "true"),
        (False, "false"),
        ("yes", "true"),
        ("Enabled", "true"),
        ("0", "false"),
        ("off", "false"),
    ])
    def test_boolean_values_are_normalised(self, raw, expected):
        assert SettingValidator.validate_setting("boolean", raw) == expected

    def test_boolean_rejects_garbage(self):
        with pytest.raises(ValueError, match="boolean"):
            SettingValidator.validate_setting("boolean", "maybe")

    def test_integral_numbers_render_without_decimal(self):
        assert SettingValidator.validate_setting("number", "30") == "30"
        assert SettingValidator.validate_setting("number", 2.0) == "2"
        assert SettingValidator.validate_setting("number", "0.75") == "0.75"

    def test_number_rejects_bool_and_text(self):
        with pytest.raises(ValueError):
            SettingValidator.validate_setting("number", True)
        with pytest.raises(ValueError):
            SettingValidator.validate_setting("number", "thirty")

    def test_json_strings_must_parse(self):
        assert SettingValidator.validate_setting("json", '{"a": 1}') == '{"a": 1}'
        with pytest.raises(ValueError, match="JSON"):
            SettingValidator.validate_setting("json", "{broken")

    def test_json_objects_are_serialised(self):
        assert SettingValidator.validate_setting("json", {"言語": "日本語"}) == '{"言語": "日本語"}'

    def test_string_passthrough_and_none(self):
        assert SettingValidator.validate_setting("string", "hello") == "hello"
        assert SettingValidator.validate_setting("string", None) is None

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown setting_type"):
            SettingValidator.validate_setting("date", "2025-01-01")


class TestSettings:

    def test_defaults_do_not_require_environment(self):
        settings = Settings(_env_file=None, supabase_url="", supabase_key="", ai_api_key="")
        assert settings.ai_model == "gemini-2.0-flash"
        assert settings.ai_max_attempts == 1
        assert settings.system_user_id == "00000000-0000-0000-0000-000000000000"

    def test_missing_required_names_every_gap(self):
        settings = Settings(_env_file=None, supabase_url="https://x.supabase.co", supabase_key="", ai_api_key="")
        assert settings.missing_required() == ["SUPABASE_KEY", "AI_API_KEY"]
        with pytest.raises(ValueError, match="SUPABASE_KEY, AI_API_KEY"):
            settings.validate_required()

    def test_gemini_api_key_alias(self, monkeypatch):
        monkeypatch.delenv("AI_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "from-alias")
        settings = Settings(_env_file=None)
        assert settings.ai_api_key == "from-alias"

    def test_validate_required_passes_with_test_settings(self, test_settings):
        test_settings.validate_required()
