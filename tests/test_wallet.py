"""Unit tests for the encrypted wallet file layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chainshell.errors import EmptyPassphraseError, WalletDecryptError, WalletError, WalletExistsError
from chainshell.wallet import (
    create_wallet_file,
    decrypt_private_key,
    derive_key_from_passphrase,
    encrypt_private_key,
    read_wallet_file,
)

SECRET = bytes(range(32))


def test_derive_key_deterministic_with_explicit_salt() -> None:
    salt = b"scrypt-test-salt"
    key_one, salt_one = derive_key_from_passphrase("hunter2", salt=salt)
    key_two, salt_two = derive_key_from_passphrase("hunter2", salt=salt)

    assert key_one == key_two
    assert salt_one == salt_two


def test_derive_key_changes_with_random_salt() -> None:
    key_one, salt_one = derive_key_from_passphrase("hunter2")
    key_two, salt_two = derive_key_from_passphrase("hunter2")

    assert salt_one != salt_two
    assert key_one != key_two


def test_encrypt_and_decrypt_private_key_round_trip() -> None:
    encrypted = encrypt_private_key(SECRET, passphrase="shared-secret")

    assert encrypted.kdf == "scrypt"
    assert decrypt_private_key(encrypted, passphrase="shared-secret") == SECRET


def test_decrypt_rejects_wrong_passphrase() -> None:
    encrypted = encrypt_private_key(SECRET, passphrase="shared-secret")

    with pytest.raises(WalletDecryptError):
        decrypt_private_key(encrypted, passphrase="not-the-same")


def test_empty_passphrase_is_rejected() -> None:
    with pytest.raises(EmptyPassphraseError):
        encrypt_private_key(SECRET, passphrase="")


def test_wallet_file_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "wallet.json"
    create_wallet_file(path, "pw", SECRET)

    stored = json.loads(path.read_text())
    assert stored["version"] == 1
    assert SECRET.hex() not in path.read_text()
    assert read_wallet_file(path, "pw") == SECRET


def test_wallet_file_is_never_overwritten(tmp_path: Path) -> None:
    path = tmp_path / "wallet.json"
    path.write_text("keep me")

    with pytest.raises(WalletExistsError):
        create_wallet_file(path, "pw", SECRET)
    assert path.read_text() == "keep me"


def test_reading_invalid_wallet_files(tmp_path: Path) -> None:
    with pytest.raises(WalletError):
        read_wallet_file(tmp_path / "missing.json", "pw")

    garbage = tmp_path / "garbage.json"
    garbage.write_text("not json")
    with pytest.raises(WalletError):
        read_wallet_file(garbage, "pw")

    wrong_shape = tmp_path / "shape.json"
    wrong_shape.write_text(json.dumps({"hello": "world"}))
    with pytest.raises(WalletError):
        read_wallet_file(wrong_shape, "pw")


@pytest.mark.parametrize("field", ["salt", "nonce", "ciphertext"])
def test_corrupt_wallet_fields_are_reported(tmp_path: Path, field: str) -> None:
    path = tmp_path / "wallet.json"
    create_wallet_file(path, "pw", SECRET)
    stored = json.loads(path.read_text())
    stored[field] = "%%not base64%%"
    path.write_text(json.dumps(stored))

    with pytest.raises(WalletError) as excinfo:
        read_wallet_file(path, "pw")

    assert str(excinfo.value).endswith("is not a wallet file")
    assert not isinstance(excinfo.value, WalletDecryptError)
