"""Tests for configuration loading."""

from hydro_agent.core.config import Settings


def test_default_settings():
    """Test that default settings load correctly."""
    settings = Settings()

    assert settings.device.id == "ESP32_MASTER_001"
    assert settings.server.url == "http://localhost:8000"
    assert settings.polling.interval == 5
    assert settings.polling.partitions == ["master", "slave"]
    assert settings.relays.master_count == 16
    assert settings.relays.slave_count == 8


def test_settings_from_env(monkeypatch):
    """Test loading settings from environment variables."""
    monkeypatch.setenv("HYDRO_SERVER__URL", "http://custom:9000")
    monkeypatch.setenv("HYDRO_DEVICE__ID", "ESP32_MASTER_042")
    monkeypatch.setenv("HYDRO_POLLING__LIMIT", "10")

    settings = Settings()

    assert settings.server.url == "http://custom:9000"
    assert settings.device.id == "ESP32_MASTER_042"
    assert settings.polling.limit == 10


def test_settings_from_yaml(tmp_path):
    """Test loading settings from a YAML file."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "device:\n"
        "  id: ESP32_MASTER_007\n"
        "polling:\n"
        "  partitions: [slave]\n"
        "relays:\n"
        "  faulty: [3]\n"
    )

    settings = Settings.from_yaml(config_file)

    assert settings.device.id == "ESP32_MASTER_007"
    assert settings.polling.partitions == ["slave"]
    assert settings.relays.faulty == [3]


def test_empty_yaml_uses_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")

    assert Settings.from_yaml(config_file).device.id == "ESP32_MASTER_001"


def test_connection_settings_cover_only_used_fields():
    settings = Settings()

    assert set(settings.device.model_dump()) == {"id", "name"}
    assert set(settings.server.model_dump()) == {"url", "api_key", "timeout"}
