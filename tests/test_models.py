import pytest
from pydantic import ValidationError

from heartline.core.codec import decode_envelope, encode_envelope
from heartline.core.models import (
    HandshakeEnvelope,
    HeartlineConfig,
    LivenessEnvelope,
    LivenessKind,
    RegistrySettings,
)
from heartline.utils.diagnostics import EnvelopeError


def test_liveness_envelope_wire_format_uses_camel_case_keys():
    envelope = LivenessEnvelope(
        sender="billing",
        target="monitor",
        type=LivenessKind.CONNECT,
        content={"hbInterval": 1000},
    )

    assert envelope.model_dump(mode="json") == {
        "sender": "billing",
        "target": "monitor",
        "type": "CONNECT",
        "content": {"hbInterval": 1000},
    }
    assert envelope.heartbeat_interval_ms == 1000


def test_heartbeat_interval_accepts_numeric_strings():
    envelope = LivenessEnvelope(sender="w", target="monitor", type="CONNECT", content={"hbInterval": "250"})
    assert envelope.heartbeat_interval_ms == 250


def test_info_text_defaults_to_empty():
    envelope = LivenessEnvelope(sender="w", target="monitor", type=LivenessKind.INFO)
    assert envelope.info == ""


def test_decode_rejects_unknown_kind_and_extra_fields():
    with pytest.raises(EnvelopeError, match="LivenessEnvelope"):
        decode_envelope(b'{"sender": "w", "target": "monitor", "type": "PING"}', LivenessEnvelope)

    with pytest.raises(EnvelopeError):
        decode_envelope(b'{"sender": "w", "target": "b", "content": "hi", "extra": 1}', HandshakeEnvelope)


def test_decode_rejects_bytes_that_are_not_json():
    with pytest.raises(EnvelopeError) as exc_info:
        decode_envelope(b"\x00\x01garbage", HandshakeEnvelope)

    assert exc_info.value.raw == b"\x00\x01garbage"


def test_encode_then_decode_handshake_envelope():
    envelope = HandshakeEnvelope(sender="alice", target="bob", content="!ack")
    assert decode_envelope(encode_envelope(envelope), HandshakeEnvelope) == envelope


def test_config_defaults():
    config = HeartlineConfig.from_dict({})

    assert config.transport.url == "memory://"
    assert config.transport.connect_timeout_ms == 5000
    assert config.registry.queue_name == "monitor"
    assert config.registry.sweep_interval_ms == 5000
    assert config.worker.default_heartbeat_interval_ms == 1000


def test_config_sections_are_validated():
    with pytest.raises(ValidationError):
        HeartlineConfig.from_dict({"registry": {"sweep_interval_ms": 0}})

    with pytest.raises(ValidationError):
        RegistrySettings(queue_name="has spaces")


def test_framework_settings_read_environment(monkeypatch):
    monkeypatch.setenv("HEARTLINE_ENV", "production")

    config = HeartlineConfig.from_dict({})

    assert config.settings.env == "production"
