# https://github.com/ethereum/EIPs/blob/master/EIPS/eip-7702.md
# authority = ecrecover(
#   keccak(MAGIC || rlp([chain_id, address, nonce])), y_parity, r, s
# )

import logging
from dataclasses import dataclass

from eth_keys import KeyAPI
from eth_keys.exceptions import BadSignature
from eth_utils import keccak, to_checksum_address
from eth_utils.exceptions import ValidationError as EthUtilsValidationError
from rlp import encode as rlp_encode

from setcode_tx.exceptions import (SigningFailure, ValidationException,
                                   ValidationExceptionCode)
from setcode_tx.typing import Address
from setcode_tx.utils.canonical import (canonicalize_signature, encode_address,
                                        encode_uint)
from setcode_tx.utils.signer import Signer

AUTHORIZATION_MAGIC = b"\x05"
DELEGATION_DESIGNATOR_PREFIX = b"\xef\x01\x00"


@dataclass(frozen=True)
class Authorization:
    chain_id: int
    address: bytes
    nonce: int
    y_parity: int
    r: int
    s: int

    def to_rlp_list(self) -> list[bytes]:
        return [
            encode_uint(self.chain_id, "authorization.chainId"),
            encode_address(self.address, "authorization.address"),
            encode_uint(self.nonce, "authorization.nonce"),
            encode_uint(self.y_parity, "authorization.yParity"),
            encode_uint(self.r, "authorization.r"),
            encode_uint(self.s, "authorization.s"),
        ]

    def get_authorization_json(self) -> dict[str, str]:
        return {
            "chainId": hex(self.chain_id),
            "address": to_checksum_address(self.address),
            "nonce": hex(self.nonce),
            "yParity": hex(self.y_parity),
            "r": hex(self.r),
            "s": hex(self.s),
        }


def authorization_nonce(sender_nonce: int, nonce_offset: int) -> int:
    """
    Nonce the authority signs over. Networks that bump the sender nonce
    before processing the authorization list need nonce_offset=1 when the
    sender is also the authority, others need 0.
    """
    if sender_nonce < 0:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid sender nonce : {sender_nonce}",
        )
    nonce = sender_nonce + nonce_offset
    if nonce < 0:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid authorization nonce : {nonce} "
            f"for sender nonce {sender_nonce} and offset {nonce_offset}",
        )
    return nonce


def verify_chain_id(chain_id: int) -> int:
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        raise ValidationException(
            ValidationExceptionCode.InvalidChainId,
            f"Invalid chain id : {chain_id!r}",
        )
    return chain_id


def authorization_digest(
    chain_id: int, delegate_address: str | bytes, nonce: int
) -> bytes:
    return keccak(
        AUTHORIZATION_MAGIC +
        rlp_encode(
            [
                encode_uint(chain_id, "authorization.chainId"),
                encode_address(delegate_address, "authorization.address"),
                encode_uint(nonce, "authorization.nonce"),
            ]
        )
    )


def sign_authorization(
    chain_id: int,
    delegate_address: str | bytes,
    nonce: int,
    signer: Signer,
) -> Authorization:
    verify_chain_id(chain_id)
    address = encode_address(delegate_address, "authorization.address")
    digest = authorization_digest(chain_id, address, nonce)

    v, r, s = signer.sign(digest)
    y_parity, r, s = canonicalize_signature(v, r, s)

    logging.debug(
        f"Signed authorization for delegate {to_checksum_address(address)} "
        f"on chain {chain_id} with nonce {nonce}"
    )
    return Authorization(chain_id, address, nonce, y_parity, r, s)


def recover_authorization_signer(authorization: Authorization) -> Address:
    digest = authorization_digest(
        authorization.chain_id, authorization.address, authorization.nonce
    )
    try:
        signature = KeyAPI.Signature(
            vrs=(authorization.y_parity, authorization.r, authorization.s)
        )
        return Address(
            signature.recover_public_key_from_msg_hash(
                digest
            ).to_checksum_address()
        )
    except (EthUtilsValidationError, BadSignature) as excp:
        logging.error(
            "Failed to recover authorization for address: "
            f"{to_checksum_address(authorization.address)}. error:{str(excp)}"
        )
        raise SigningFailure(
            "Failed to recover authorization for address: "
            f"{to_checksum_address(authorization.address)}"
        )


def delegation_designator(delegate_address: str | bytes) -> bytes:
    return DELEGATION_DESIGNATOR_PREFIX + encode_address(delegate_address)
