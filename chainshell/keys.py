"""secp256k1 key handling for wallet identities."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, utils

from . import encoding
from .errors import InvalidPrivateKeyError, WalletError

PRIVATE_KEY_SIZE = 32
WIF_VERSION = b"\x80"
ADDRESS_VERSION = b"\x00"

# Order of the secp256k1 group.
_CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def hash160(data: bytes) -> bytes:
    # ripemd160 comes from OpenSSL and is missing from some OpenSSL 3 builds.
    try:
        ripemd = hashlib.new("ripemd160")
    except ValueError as exc:
        raise WalletError("ripemd160 is not available from this Python's OpenSSL build") from exc
    ripemd.update(hashlib.sha256(data).digest())
    return ripemd.digest()


@dataclass
class WalletKey:
    """A secp256k1 private key with the encodings the shell displays."""

    private_key: ec.EllipticCurvePrivateKey

    @classmethod
    def generate(cls) -> "WalletKey":
        return cls(ec.generate_private_key(ec.SECP256K1()))

    @classmethod
    def from_bytes(cls, private_bytes: bytes) -> "WalletKey":
        if len(private_bytes) != PRIVATE_KEY_SIZE:
            raise InvalidPrivateKeyError(f"expected {PRIVATE_KEY_SIZE} bytes, got {len(private_bytes)}")
        value = int.from_bytes(private_bytes, "big")
        if not 0 < value < _CURVE_ORDER:
            raise InvalidPrivateKeyError("value out of range")
        return cls(ec.derive_private_key(value, ec.SECP256K1()))

    @classmethod
    def from_wif(cls, wif: str) -> "WalletKey":
        """Import a WIF string (``0x80`` version byte, optional compression flag)."""

        try:
            data = encoding.b58decode_check(wif)
        except ValueError as exc:
            raise InvalidPrivateKeyError(str(exc)) from exc
        if not data.startswith(WIF_VERSION):
            raise InvalidPrivateKeyError("unexpected WIF version byte")
        payload = data[len(WIF_VERSION):]
        if len(payload) == PRIVATE_KEY_SIZE + 1 and payload[-1] == 0x01:
            payload = payload[:-1]
        return cls.from_bytes(payload)

    def private_bytes(self) -> bytes:
        return self.private_key.private_numbers().private_value.to_bytes(PRIVATE_KEY_SIZE, "big")

    def public_bytes(self) -> bytes:
        """SEC1 compressed public key."""

        return self.private_key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )

    def address_bytes(self) -> bytes:
        """Raw address: version byte, key hash and checksum."""

        return encoding.b58decode(self.address())

    def address(self) -> str:
        return encoding.b58encode_check(hash160(self.public_bytes()), ADDRESS_VERSION)

    def wif(self) -> str:
        return encoding.b58encode_check(self.private_bytes(), WIF_VERSION)

    def public(self) -> str:
        return encoding.b58encode(self.public_bytes())

    def sign(self, digest: bytes) -> bytes:
        """DER-encoded ECDSA signature over a SHA-256 ``digest``."""

        return self.private_key.sign(digest, ec.ECDSA(utils.Prehashed(hashes.SHA256())))

    def verify(self, signature: bytes, digest: bytes) -> bool:
        try:
            self.private_key.public_key().verify(
                signature, digest, ec.ECDSA(utils.Prehashed(hashes.SHA256()))
            )
        except InvalidSignature:
            return False
        return True
