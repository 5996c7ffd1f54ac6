"""Configuration schema for the remote audio client.

Defines Pydantic models for loading and validating client configuration
from YAML files, environment variables and command-line overrides.
"""

import os
import secrets
import string
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, field_validator

USER_ID_LENGTH = 10


def generate_user_id(length: int = USER_ID_LENGTH) -> str:
    """Generate a random identity string of ASCII letters.

    Args:
        length: Number of characters

    Returns:
        Random identity used as ping origin and broker client id
    """
    return "".join(secrets.choice(string.ascii_letters) for _ in range(length))


class GeneralConfig(BaseModel):
    """Process identity configuration."""

    user_id: str = Field(
        default="",
        description="Client identity; generated at startup when empty",
    )


class MqttConfig(BaseModel):
    """Broker connection and station addressing."""

    broker_url: str = Field(default="localhost", description="Broker host name")
    broker_port: int = Field(default=1883, ge=1, le=65535, description="Broker port")
    station: str = Field(default="mystation", description="Station to connect to")
    radio: str = Field(default="myradio", description="Radio ID on the station")

    @field_validator("station", "radio")
    @classmethod
    def validate_topic_segment(cls, v: str) -> str:
        """Station and radio become single topic levels."""
        if not v:
            raise ValueError("Topic segment must not be empty")
        if any(ch in v for ch in "/+#"):
            raise ValueError(f"Topic segment must not contain '/', '+' or '#', got '{v}'")
        return v


class WebUIConfig(BaseModel):
    """Status server configuration."""

    disabled: bool = Field(default=False, description="Disable the status server")
    address: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class AudioConfig(BaseModel):
    """Audio framing shared by recorder and player."""

    frame_length: int = Field(default=480, ge=1, description="Frames per buffer")


class AudioDeviceConfig(BaseModel):
    """Audio device settings handed to the recorder or player."""

    device_name: str = Field(default="default", description="Device name")
    samplingrate: float = Field(default=48000.0, gt=0, description="Sample rate in Hz")
    latency_ms: float = Field(default=5.0, ge=0, description="Device latency in milliseconds")
    channels: str = Field(default="mono", description="Channel layout (mono or stereo)")

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: str) -> str:
        """Validate channel layout."""
        v_lower = v.lower()
        if v_lower not in ("mono", "stereo"):
            raise ValueError(f"channels must be 'mono' or 'stereo', got '{v}'")
        return v_lower


class PipelineConfig(BaseModel):
    """Queue sizing and control loop timing."""

    outbound_capacity: int = Field(default=20, ge=1, description="Outbound wire queue size")
    recorder_capacity: int = Field(
        default=20, ge=1, description="Recorder-to-encode queue size"
    )
    decode_audio_capacity: int = Field(default=20, ge=1, description="Decode-audio queue size")
    decode_response_capacity: int = Field(
        default=10, ge=1, description="Decode-response queue size"
    )
    bus_capacity: int = Field(default=100, ge=1, description="Per-subscriber bus buffer")
    ping_interval_s: float = Field(default=1.0, gt=0, description="Keepalive ping interval")
    startup_stagger_ms: int = Field(
        default=150,
        ge=0,
        description="Delay between starting player, recorder and transport",
    )


class CollaboratorsConfig(BaseModel):
    """Dotted import paths (``package.module:callable``) of collaborator factories."""

    transport: str | None = Field(default=None, description="Broker transport factory")
    player: str | None = Field(default=None, description="Audio player factory")
    recorder: str | None = Field(default=None, description="Audio recorder factory")

    @field_validator("transport", "player", "recorder")
    @classmethod
    def validate_import_path(cls, v: str | None) -> str | None:
        """Validate ``module:attribute`` format."""
        if v is None:
            return v
        module, sep, attr = v.partition(":")
        if not sep or not module or not attr:
            raise ValueError(
                f"Collaborator path must look like 'package.module:factory', got '{v}'"
            )
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (json or text)")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Ensure log format is valid."""
        valid_formats = {"json", "text"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


# Environment variable -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "REMOTE_AUDIO_BROKER_URL": ("mqtt", "broker_url"),
    "REMOTE_AUDIO_BROKER_PORT": ("mqtt", "broker_port"),
    "REMOTE_AUDIO_STATION": ("mqtt", "station"),
    "REMOTE_AUDIO_RADIO": ("mqtt", "radio"),
    "REMOTE_AUDIO_USER_ID": ("general", "user_id"),
}


class ClientConfig(BaseModel):
    """Root client configuration."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    webui: WebUIConfig = Field(default_factory=WebUIConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    input_device: AudioDeviceConfig = Field(default_factory=AudioDeviceConfig)
    output_device: AudioDeviceConfig = Field(default_factory=AudioDeviceConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    collaborators: CollaboratorsConfig = Field(default_factory=CollaboratorsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "ClientConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(_apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "ClientConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(_apply_env_overrides({}))

    def with_overrides(self, overrides: dict[str, dict[str, Any]]) -> "ClientConfig":
        """Return a copy with per-section overrides applied.

        ``None`` values are skipped so unset command-line flags keep the
        file or environment value.

        Args:
            overrides: Mapping of section name to field overrides

        Returns:
            Validated configuration copy
        """
        data = self.model_dump()
        for section, values in overrides.items():
            for key, value in values.items():
                if value is not None:
                    data.setdefault(section, {})[key] = value
        return ClientConfig.model_validate(data)

    def with_identity(self) -> "ClientConfig":
        """Return a copy whose ``general.user_id`` is set, generating one if needed."""
        if self.general.user_id:
            return self
        return self.with_overrides({"general": {"user_id": generate_user_id()}})


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    for env_var, (section, key) in _ENV_OVERRIDES.items():
        if value := os.getenv(env_var):
            if section not in data or data[section] is None:
                data[section] = {}
            data[section][key] = value
    return data
