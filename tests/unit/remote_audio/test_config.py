"""Unit tests for client configuration.

Tests defaults, validation, YAML loading and override precedence.
"""

from pathlib import Path

import pytest

from remote_audio.config import (
    AudioDeviceConfig,
    ClientConfig,
    CollaboratorsConfig,
    LoggingConfig,
    MqttConfig,
    PipelineConfig,
    generate_user_id,
)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables out of the tests."""
    for name in (
        "REMOTE_AUDIO_BROKER_URL",
        "REMOTE_AUDIO_BROKER_PORT",
        "REMOTE_AUDIO_STATION",
        "REMOTE_AUDIO_RADIO",
        "REMOTE_AUDIO_USER_ID",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    """Test configuration defaults."""
    config = ClientConfig()

    assert config.general.user_id == ""
    assert config.mqtt.broker_url == "localhost"
    assert config.mqtt.broker_port == 1883
    assert config.mqtt.station == "mystation"
    assert config.mqtt.radio == "myradio"
    assert config.webui.disabled is False
    assert config.webui.address == "127.0.0.1"
    assert config.webui.port == 8080
    assert config.audio.frame_length == 480
    assert config.input_device.samplingrate == 48000
    assert config.output_device.channels == "mono"
    assert config.logging.level == "INFO"


def test_pipeline_defaults() -> None:
    """Test queue sizing and timing defaults."""
    config = PipelineConfig()

    assert config.outbound_capacity == 20
    assert config.recorder_capacity == 20
    assert config.decode_audio_capacity == 20
    assert config.decode_response_capacity == 10
    assert config.bus_capacity == 100
    assert config.ping_interval_s == 1.0
    assert config.startup_stagger_ms == 150


@pytest.mark.parametrize("segment", ["", "a/b", "a+", "#"])
def test_invalid_topic_segment(segment: str) -> None:
    """Test station names that would break the topic layout are rejected."""
    with pytest.raises(ValueError):
        MqttConfig(station=segment)


def test_invalid_port() -> None:
    """Test broker port range validation."""
    with pytest.raises(ValueError):
        MqttConfig(broker_port=0)
    with pytest.raises(ValueError):
        MqttConfig(broker_port=70000)


def test_channels_normalized() -> None:
    """Test channel layout is case-insensitive and validated."""
    assert AudioDeviceConfig(channels="Stereo").channels == "stereo"
    with pytest.raises(ValueError):
        AudioDeviceConfig(channels="quad")


def test_collaborator_path_validation() -> None:
    """Test collaborator paths need a module and an attribute."""
    assert CollaboratorsConfig(transport="pkg.mqtt:create").transport == "pkg.mqtt:create"
    with pytest.raises(ValueError):
        CollaboratorsConfig(player="pkg.player")


def test_logging_validation() -> None:
    """Test log level and format normalization."""
    config = LoggingConfig(level="debug", format="JSON")
    assert config.level == "DEBUG"
    assert config.format == "json"

    with pytest.raises(ValueError):
        LoggingConfig(level="VERBOSE")


def test_from_yaml(tmp_path: Path) -> None:
    """Test loading a partial YAML file keeps defaults for the rest."""
    path = tmp_path / "client.yaml"
    path.write_text(
        "mqtt:\n"
        "  broker_url: broker.example.org\n"
        "  station: dl0abc\n"
        "pipeline:\n"
        "  ping_interval_s: 0.5\n"
    )

    config = ClientConfig.from_yaml(path)

    assert config.mqtt.broker_url == "broker.example.org"
    assert config.mqtt.station == "dl0abc"
    assert config.mqtt.radio == "myradio"
    assert config.pipeline.ping_interval_s == 0.5


def test_from_yaml_missing_file(tmp_path: Path) -> None:
    """Test a missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        ClientConfig.from_yaml(tmp_path / "missing.yaml")


def test_from_yaml_rejects_non_mapping(tmp_path: Path) -> None:
    """Test a YAML list at the root is rejected."""
    path = tmp_path / "client.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ValueError):
        ClientConfig.from_yaml(path)


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test environment variables override file values."""
    path = tmp_path / "client.yaml"
    path.write_text("mqtt:\n  broker_url: from-file\n")
    monkeypatch.setenv("REMOTE_AUDIO_BROKER_URL", "from-env")
    monkeypatch.setenv("REMOTE_AUDIO_BROKER_PORT", "8883")

    config = ClientConfig.from_yaml(path)

    assert config.mqtt.broker_url == "from-env"
    assert config.mqtt.broker_port == 8883


def test_defaults_without_file(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test defaults are used when no file is given, with env still applied."""
    monkeypatch.setenv("REMOTE_AUDIO_RADIO", "ic7300")

    config = ClientConfig.from_yaml_with_defaults(None)

    assert config.mqtt.radio == "ic7300"


def test_with_overrides_skips_none() -> None:
    """Test unset overrides keep existing values."""
    config = ClientConfig().with_overrides(
        {"mqtt": {"broker_url": "other", "broker_port": None}, "webui": {"disabled": True}}
    )

    assert config.mqtt.broker_url == "other"
    assert config.mqtt.broker_port == 1883
    assert config.webui.disabled is True


def test_with_overrides_validates() -> None:
    """Test overrides go through validation."""
    with pytest.raises(ValueError):
        ClientConfig().with_overrides({"mqtt": {"radio": "a/b"}})


def test_with_identity_generates() -> None:
    """Test an empty user id is replaced by a random identity."""
    config = ClientConfig().with_identity()

    assert len(config.general.user_id) == 10
    assert config.general.user_id.isalpha()


def test_with_identity_keeps_configured() -> None:
    """Test a configured user id is kept."""
    config = ClientConfig().with_overrides({"general": {"user_id": "fixed"}})

    assert config.with_identity().general.user_id == "fixed"


def test_generate_user_id() -> None:
    """Test generated identities are ASCII letters of the requested length."""
    user_id = generate_user_id(16)

    assert len(user_id) == 16
    assert user_id.isascii() and user_id.isalpha()
