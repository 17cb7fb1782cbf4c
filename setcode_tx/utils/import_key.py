import glob
import logging

from eth_account import Account

from setcode_tx.utils.signer import LocalSigner


def decrypt_keystore(
    keystore_file_password: str, keystore_file_path: str = "keystore/*"
) -> bytes:
    keystore_files = glob.glob(keystore_file_path)
    if len(keystore_files) == 0:
        raise FileNotFoundError(f"No keystore file at {keystore_file_path}")
    keystore = keystore_files[0]

    with open(keystore) as keyfile:
        encrypted_key = keyfile.read()
    logging.debug(f"Decrypting keystore file {keystore}")
    return Account.decrypt(encrypted_key, keystore_file_password)


def load_signer(
    private_key: str | None,
    keystore_file_path: str | None = None,
    keystore_file_password: str = "",
) -> LocalSigner:
    if keystore_file_path is not None:
        return LocalSigner(
            decrypt_keystore(keystore_file_password, keystore_file_path)
        )
    if not private_key:
        raise ValueError("Either a private key or a keystore file is required")
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key
    return LocalSigner(private_key)
