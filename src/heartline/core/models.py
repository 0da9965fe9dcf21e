from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


HEARTBEAT_INTERVAL_PROPERTY = "hbInterval"
INFO_PROPERTY = "info"

HELLO_TOKEN = "!hello"
ACK_TOKEN = "!ack"

_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$"


class FrameworkSettings(BaseSettings):
    """
    Framework-level settings (the 'heartline' section in heartline.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='HEARTLINE_', extra='ignore')

    env: str = "development"
    app_name: str = "Heartline"
    log_level: str = "INFO"


class TransportSettings(BaseModel):
    """
    Transport connection settings (the 'transport' section in heartline.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    url: str = "memory://"
    connect_timeout_ms: int = Field(default=5000, ge=1)
    key_prefix: str = "heartline:"
    poll_timeout_ms: int = Field(default=1000, ge=1)


class RegistrySettings(BaseModel):
    """
    Liveness registry settings (the 'registry' section in heartline.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    queue_name: str = Field(default="monitor", pattern=_NAME_PATTERN)
    sweep_interval_ms: int = Field(default=5000, ge=1)


class WorkerSettings(BaseModel):
    """
    Worker agent defaults (the 'worker' section in heartline.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    default_heartbeat_interval_ms: int = Field(default=1000, ge=1)


class HeartlineConfig(BaseModel):
    """Validated bundle of every configuration section."""

    settings: FrameworkSettings = Field(default_factory=FrameworkSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @classmethod
    def from_dict(cls, config_dict: Optional[Dict[str, Any]] = None) -> "HeartlineConfig":
        """Build the configuration from the dict returned by load_config."""
        config_dict = config_dict or {}
        return cls(
            settings=FrameworkSettings(**(config_dict.get('heartline') or {})),
            transport=TransportSettings(**(config_dict.get('transport') or {})),
            registry=RegistrySettings(**(config_dict.get('registry') or {})),
            worker=WorkerSettings(**(config_dict.get('worker') or {})),
        )


class LivenessKind(str, Enum):
    """Message kinds exchanged between workers and the registry."""

    CONNECT = "CONNECT"
    HEARTBEAT = "HEARTBEAT"
    INFO = "INFO"
    DISCONNECT = "DISCONNECT"


class LivenessEnvelope(BaseModel):
    """
    Liveness message sent by a worker to the registry queue.

    `content` carries the heartbeat interval on CONNECT and free text on INFO.
    """
    model_config = ConfigDict(extra='forbid')

    sender: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: LivenessKind
    content: Optional[Dict[str, Any]] = None

    @property
    def heartbeat_interval_ms(self) -> int:
        if not self.content or HEARTBEAT_INTERVAL_PROPERTY not in self.content:
            raise ValueError(f"{self.type.value} envelope from '{self.sender}' carries no heartbeat interval.")
        return int(self.content[HEARTBEAT_INTERVAL_PROPERTY])

    @property
    def info(self) -> str:
        if not self.content:
            return ""
        return str(self.content.get(INFO_PROPERTY, ""))


class HandshakeEnvelope(BaseModel):
    """Peer-to-peer message: a control token or chat text."""

    model_config = ConfigDict(extra='forbid')

    sender: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    content: str


class ServiceState(str, Enum):
    """Liveness state of a monitored worker."""

    CONNECTED = "CONNECTED"
    TIMEOUT = "TIMEOUT"
    DISCONNECTED = "DISCONNECTED"


class ServiceRecord(BaseModel):
    """Registry entry for one worker. Timestamps are milliseconds on the registry clock."""

    name: str
    state: ServiceState
    heartbeat_interval_ms: int
    last_heartbeat_at: float


class ConnectionState(str, Enum):
    """State of a handshake with one counterparty."""

    # This peer sent hello and waits for the counterparty's ack.
    SELF_AWAITING_ACK = "SELF_AWAITING_ACK"
    # The counterparty sent hello and waits for our ack.
    TARGET_AWAITING_ACK = "TARGET_AWAITING_ACK"
    ACCEPTED = "ACCEPTED"


class PeerConnection(BaseModel):
    counterpart: str
    state: ConnectionState
