"""Tests for QR payload encryption."""
import base64

import pytest

from qrattend.services.payload_codec import PayloadCodec, PayloadDescriptor
from qrattend.utils.errors import MalformedPayloadError

DESCRIPTOR = PayloadDescriptor(
    session_id='4f1c2a9e-7d3b-4c55-9a61-0e2f8b7c1d34',
    section_id=1,
    course_id=10,
    issued_at=1792400400000,
    expires_at=1792401300000,
)


def test_encode_decode_round_trip(codec):
    payload = codec.encode(DESCRIPTOR)

    assert isinstance(payload, str)
    assert codec.decode(payload) == DESCRIPTOR


def test_payload_is_opaque(codec):
    payload = codec.encode(DESCRIPTOR)
    raw = base64.urlsafe_b64decode(payload)

    assert DESCRIPTOR.session_id.encode() not in raw


def test_random_iv_gives_distinct_payloads(codec):
    assert codec.encode(DESCRIPTOR) != codec.encode(DESCRIPTOR)


def test_fixed_iv_is_deterministic():
    codec = PayloadCodec('deterministic-key', iv_factory=lambda size: b'\x00' * size)

    assert codec.encode(DESCRIPTOR) == codec.encode(DESCRIPTOR)


def test_flipped_byte_is_rejected(codec):
    raw = bytearray(base64.urlsafe_b64decode(codec.encode(DESCRIPTOR)))
    raw[20] ^= 0x01
    tampered = base64.urlsafe_b64encode(bytes(raw)).decode('ascii')

    with pytest.raises(MalformedPayloadError):
        codec.decode(tampered)


def test_wrong_key_is_rejected(codec):
    other = PayloadCodec('a-different-key')

    with pytest.raises(MalformedPayloadError):
        other.decode(codec.encode(DESCRIPTOR))


def test_truncated_payload_is_rejected(codec):
    payload = codec.encode(DESCRIPTOR)

    with pytest.raises(MalformedPayloadError):
        codec.decode(payload[:40])


@pytest.mark.parametrize('garbage', ['', 'not-base64!!', 'aGVsbG8=', 'ééé'])
def test_garbage_is_rejected(codec, garbage):
    with pytest.raises(MalformedPayloadError) as exc_info:
        codec.decode(garbage)

    assert exc_info.value.kind == 'Malformed'
    assert exc_info.value.status_code == 400


def test_non_string_is_rejected(codec):
    with pytest.raises(MalformedPayloadError):
        codec.decode(None)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        PayloadCodec('')
