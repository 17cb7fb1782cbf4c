import json

import pytest
from eth_account import Account

from setcode_tx.utils.import_key import decrypt_keystore, load_signer


@pytest.fixture
def keystore_file(tmp_path, private_key):
    keystore = Account.encrypt(
        private_key, "secret", kdf="pbkdf2", iterations=2)
    path = tmp_path / "keystore.json"
    path.write_text(json.dumps(keystore))
    return path


def test_load_signer_from_keystore(keystore_file, signer):
    keystore_signer = load_signer(None, str(keystore_file), "secret")
    assert keystore_signer.address == signer.address


def test_decrypt_keystore_with_glob(keystore_file, private_key):
    key = decrypt_keystore("secret", str(keystore_file.parent / "*"))
    assert "0x" + bytes(key).hex() == private_key


def test_decrypt_keystore_wrong_password(keystore_file):
    with pytest.raises(ValueError):
        decrypt_keystore("wrong", str(keystore_file))


def test_decrypt_keystore_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        decrypt_keystore("secret", str(tmp_path / "missing*"))


def test_load_signer_adds_hex_prefix(private_key, signer):
    assert load_signer(private_key[2:]).address == signer.address


def test_load_signer_requires_key():
    with pytest.raises(ValueError):
        load_signer(None)
