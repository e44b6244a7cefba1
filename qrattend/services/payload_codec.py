"""Encryption of the session descriptor embedded in the QR code."""
import base64
import binascii
import hmac
import json
import os
from dataclasses import asdict, dataclass
from typing import Callable, Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from qrattend.utils.errors import MalformedPayloadError

IV_SIZE = 16
TAG_SIZE = 32
BLOCK_SIZE = 16
KDF_SALT = b'qrattend-payload-v1'
KDF_ITERATIONS = 100000

DESCRIPTOR_FIELDS = ('session_id', 'section_id', 'course_id', 'issued_at', 'expires_at')


@dataclass(frozen=True)
class PayloadDescriptor:
    """Compact session descriptor carried inside the QR payload.

    Timestamps are epoch milliseconds.
    """
    session_id: str
    section_id: Union[int, str]
    course_id: Union[int, str]
    issued_at: int
    expires_at: int


class PayloadCodec:
    """AES-256-CBC with encrypt-then-MAC (HMAC-SHA256).

    Wire form is URL-safe Base64 of ``IV || ciphertext || tag``. Any
    structural or cryptographic failure while decoding raises
    MalformedPayloadError.
    """

    def __init__(self, secret: Union[str, bytes], iv_factory: Callable[[int], bytes] = os.urandom):
        if not secret:
            raise ValueError("QR encryption key must not be empty")
        if isinstance(secret, str):
            secret = secret.encode('utf-8')

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=64,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        key_material = kdf.derive(secret)
        self._enc_key = key_material[:32]
        self._mac_key = key_material[32:]
        self._iv_factory = iv_factory

    def encode(self, descriptor: PayloadDescriptor) -> str:
        """Encrypt a descriptor into an opaque payload string."""
        plaintext = json.dumps(asdict(descriptor), separators=(',', ':'), sort_keys=True).encode('utf-8')

        iv = self._iv_factory(IV_SIZE)
        if len(iv) != IV_SIZE:
            raise ValueError("IV factory must return 16 bytes")

        padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        tag = self._sign(iv + ciphertext)
        return base64.urlsafe_b64encode(iv + ciphertext + tag).decode('ascii')

    def decode(self, payload: str) -> PayloadDescriptor:
        """Authenticate, decrypt and parse a payload string."""
        if not isinstance(payload, str) or not payload:
            raise MalformedPayloadError("Invalid or corrupted QR code")

        try:
            raw = base64.urlsafe_b64decode(payload.encode('ascii'))
        except (binascii.Error, UnicodeEncodeError, ValueError):
            raise MalformedPayloadError("Invalid or corrupted QR code")

        body_size = len(raw) - IV_SIZE - TAG_SIZE
        if body_size < BLOCK_SIZE or body_size % BLOCK_SIZE:
            raise MalformedPayloadError("Invalid or corrupted QR code")

        iv = raw[:IV_SIZE]
        ciphertext = raw[IV_SIZE:-TAG_SIZE]
        tag = raw[-TAG_SIZE:]

        if not hmac.compare_digest(tag, self._sign(iv + ciphertext)):
            raise MalformedPayloadError("Invalid or corrupted QR code")

        try:
            decryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            data = json.loads(plaintext.decode('utf-8'))
        except (ValueError, UnicodeDecodeError):
            raise MalformedPayloadError("Invalid or corrupted QR code")

        return _descriptor_from_dict(data)

    def _sign(self, data: bytes) -> bytes:
        signer = crypto_hmac.HMAC(self._mac_key, hashes.SHA256())
        signer.update(data)
        return signer.finalize()


def _descriptor_from_dict(data) -> PayloadDescriptor:
    if not isinstance(data, dict) or set(data) != set(DESCRIPTOR_FIELDS):
        raise MalformedPayloadError("Invalid QR code contents")

    if not isinstance(data['session_id'], str) or not data['session_id']:
        raise MalformedPayloadError("Invalid QR code contents")

    for key in ('section_id', 'course_id'):
        if isinstance(data[key], bool) or not isinstance(data[key], (int, str)):
            raise MalformedPayloadError("Invalid QR code contents")

    for key in ('issued_at', 'expires_at'):
        if isinstance(data[key], bool) or not isinstance(data[key], int):
            raise MalformedPayloadError("Invalid QR code contents")

    return PayloadDescriptor(**data)
