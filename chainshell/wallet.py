"""Encrypted wallet files.

A wallet file is a small JSON document holding one private key sealed with
AES-GCM under a scrypt-derived key. The JSON container keeps the parameters
needed to open it again, so the file is self-describing.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import EmptyPassphraseError, WalletDecryptError, WalletError, WalletExistsError

logger = logging.getLogger(__name__)

WALLET_FORMAT_VERSION = 1

_AESGCM_NONCE_SIZE = 12
_SCRYPT_SALT_SIZE = 16
_SCRYPT_KEY_LENGTH = 32
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


@dataclass
class EncryptedWallet:
    """Serialized form of an encrypted wallet file."""

    version: int
    algorithm: str
    kdf: str
    salt: str
    nonce: str
    ciphertext: str


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(
        salt=salt,
        length=_SCRYPT_KEY_LENGTH,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def derive_key_from_passphrase(passphrase: str, salt: bytes | None = None) -> tuple[bytes, bytes]:
    """Derive a symmetric key using scrypt."""

    if salt is None:
        salt = os.urandom(_SCRYPT_SALT_SIZE)
    key = _derive_key(passphrase, salt)
    logger.debug("Derived wallet key using scrypt")
    return key, salt


def encrypt_private_key(private_bytes: bytes, passphrase: str) -> EncryptedWallet:
    if not passphrase:
        raise EmptyPassphraseError()
    key, salt = derive_key_from_passphrase(passphrase)
    nonce = os.urandom(_AESGCM_NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, private_bytes, None)
    return EncryptedWallet(
        version=WALLET_FORMAT_VERSION,
        algorithm="aes-gcm",
        kdf="scrypt",
        salt=base64.b64encode(salt).decode("ascii"),
        nonce=base64.b64encode(nonce).decode("ascii"),
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
    )


def decrypt_private_key(encrypted: EncryptedWallet, passphrase: str) -> bytes:
    if not passphrase:
        raise EmptyPassphraseError()
    salt = base64.b64decode(encrypted.salt.encode("ascii"), validate=True)
    nonce = base64.b64decode(encrypted.nonce.encode("ascii"), validate=True)
    ciphertext = base64.b64decode(encrypted.ciphertext.encode("ascii"), validate=True)
    key, _ = derive_key_from_passphrase(passphrase, salt=salt)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise WalletDecryptError("invalid passphrase or corrupted file") from exc


def create_wallet_file(path: str | Path, passphrase: str, private_bytes: bytes) -> Path:
    """Seal ``private_bytes`` into a new wallet file at ``path``.

    Existing files are never overwritten.
    """

    path = Path(path)
    if path.exists():
        raise WalletExistsError(str(path))
    encrypted = encrypt_private_key(private_bytes, passphrase)
    try:
        with path.open("x", encoding="utf-8") as handle:
            json.dump(asdict(encrypted), handle, indent=2)
    except FileExistsError as exc:
        raise WalletExistsError(str(path)) from exc
    except OSError as exc:
        raise WalletError(f"cannot write {path} ({exc.strerror})") from exc
    logger.info("Created wallet file %s", path)
    return path


def read_wallet_file(path: str | Path, passphrase: str) -> bytes:
    """Open the wallet file at ``path`` and return the private key bytes."""

    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise WalletError(f"file {path} does not exist") from exc
    except OSError as exc:
        raise WalletError(f"cannot read {path} ({exc.strerror})") from exc
    except ValueError as exc:
        raise WalletError(f"{path} is not a wallet file") from exc

    try:
        encrypted = EncryptedWallet(**data)
    except TypeError as exc:
        raise WalletError(f"{path} is not a wallet file") from exc
    if encrypted.version != WALLET_FORMAT_VERSION:
        raise WalletError(f"unsupported wallet version {encrypted.version}")
    try:
        return decrypt_private_key(encrypted, passphrase)
    except (binascii.Error, ValueError) as exc:
        # Covers corrupt base64 fields and nonces of the wrong size.
        raise WalletError(f"{path} is not a wallet file") from exc
