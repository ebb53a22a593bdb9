"""Tests for configuration loading."""

import pytest

from truxtrack.core.config import (
    AppConfig,
    ConfigError,
    ProviderType,
    load_app_config,
    write_default_config,
)
from truxtrack.core.config.models import DEFAULT_PROVIDER_URLS


class TestDefaults:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_app_config(tmp_path / "nope.yaml")

        assert isinstance(config, AppConfig)
        assert [p.name for p in config.providers] == [ProviderType.GUILBAULT, ProviderType.MINIMAX]
        assert config.server.port == 8000

    def test_provider_url_defaults_to_public_page(self):
        config = AppConfig()
        minimax = config.providers[1]

        assert minimax.resolved_url == DEFAULT_PROVIDER_URLS[ProviderType.MINIMAX]


class TestLoadAppConfig:
    """YAML loading, validation and env expansion."""

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text(
            "logging:\n"
            "  level: debug\n"
            "providers:\n"
            "  - name: minimax\n"
            "    timeout_seconds: 30\n"
            "  - name: guilbault\n"
            "    enabled: false\n",
            encoding="utf-8",
        )

        config = load_app_config(path)

        assert config.logging.level == "DEBUG"
        assert [p.name for p in config.enabled_providers] == [ProviderType.MINIMAX]
        assert config.providers[0].timeout_seconds == 30

    def test_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRUXTRACK_TEST_PORT", "9100")
        path = tmp_path / "app.yaml"
        path.write_text(
            "server:\n"
            "  host: ${TRUXTRACK_TEST_HOST:-0.0.0.0}\n"
            "  port: ${TRUXTRACK_TEST_PORT}\n",
            encoding="utf-8",
        )

        config = load_app_config(path)

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 9100

    def test_duplicate_provider_rejected(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("providers:\n  - name: minimax\n  - name: minimax\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_app_config(path)
        assert "minimax" in exc_info.value.details

    def test_unknown_level_rejected(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("logging:\n  level: LOUD\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_app_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("logging: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_app_config(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "app.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="mapping"):
            load_app_config(path)


class TestWriteDefaultConfig:
    def test_written_config_round_trips(self, tmp_path):
        path = write_default_config(tmp_path / "configs" / "app.yaml")

        config = load_app_config(path)

        assert path.exists()
        assert len(config.enabled_providers) == 2

    def test_refuses_to_overwrite(self, tmp_path):
        path = write_default_config(tmp_path / "app.yaml")

        with pytest.raises(ConfigError):
            write_default_config(path)

        write_default_config(path, force=True)
