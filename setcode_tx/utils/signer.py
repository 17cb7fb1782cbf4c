from typing import Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount

from setcode_tx.typing import Address


class Signer(Protocol):
    def sign(self, digest: bytes) -> tuple[int, int, int]:
        ...


class LocalSigner:
    """
    Signs raw 32 byte digests with a secp256k1 private key.
    sign returns (recovery_id, r, s) with the recovery id as produced by
    eth_account (27/28); builders normalize it to a y parity.
    """
    account: LocalAccount

    def __init__(self, private_key: str | bytes):
        self.account = Account.from_key(private_key)

    @property
    def address(self) -> Address:
        return Address(self.account.address)

    def sign(self, digest: bytes) -> tuple[int, int, int]:
        signature = self.account.unsafe_sign_hash(digest)
        return signature.v, signature.r, signature.s
