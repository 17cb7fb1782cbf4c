# https://github.com/ethereum/EIPs/blob/master/EIPS/eip-7702.md
# keccak(SET_CODE_TX_TYPE || rlp([chain_id, nonce, max_priority_fee_per_gas,
#   max_fee_per_gas, gas_limit, destination, value, data, access_list,
#   authorization_list]))

import logging
from dataclasses import dataclass, field

from eth_keys import KeyAPI
from eth_keys.exceptions import BadSignature
from eth_utils import keccak, to_checksum_address
from eth_utils.exceptions import ValidationError as EthUtilsValidationError
from rlp import encode as rlp_encode

from setcode_tx.exceptions import (SigningFailure, ValidationException,
                                   ValidationExceptionCode)
from setcode_tx.transaction.authorization import (Authorization,
                                                  verify_chain_id)
from setcode_tx.typing import Address
from setcode_tx.utils.canonical import (canonicalize_signature,
                                        encode_access_list,
                                        encode_destination, encode_uint)
from setcode_tx.utils.signer import Signer

SET_CODE_TX_TYPE = b"\x04"

AccessList = tuple[tuple[bytes, tuple[bytes, ...]], ...]


@dataclass(frozen=True)
class UnsignedTransaction:
    chain_id: int
    nonce: int
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas_limit: int
    to: bytes | None
    value: int
    data: bytes
    authorization_list: tuple[Authorization, ...]
    access_list: AccessList = field(default_factory=tuple)


@dataclass(frozen=True)
class TransactionEnvelope:
    chain_id: int
    nonce: int
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas_limit: int
    to: bytes | None
    value: int
    data: bytes
    access_list: AccessList
    authorization_list: tuple[Authorization, ...]
    y_parity: int
    r: int
    s: int

    @property
    def unsigned(self) -> UnsignedTransaction:
        return UnsignedTransaction(
            self.chain_id,
            self.nonce,
            self.max_priority_fee_per_gas,
            self.max_fee_per_gas,
            self.gas_limit,
            self.to,
            self.value,
            self.data,
            self.authorization_list,
            self.access_list,
        )


def validate_transaction(transaction: UnsignedTransaction) -> None:
    if len(transaction.authorization_list) == 0:
        raise ValidationException(
            ValidationExceptionCode.EmptyAuthorizationList,
            "Set code transaction requires at least one authorization.",
        )
    verify_chain_id(transaction.chain_id)
    if not isinstance(transaction.data, bytes):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            "Invalid data field, expected bytes.",
        )
    for authorization in transaction.authorization_list:
        if authorization.chain_id != transaction.chain_id:
            raise ValidationException(
                ValidationExceptionCode.InvalidChainId,
                f"Authorization chain id {authorization.chain_id} does not "
                f"match transaction chain id {transaction.chain_id}",
            )
    # encoding every field raises on invalid addresses and integers
    transaction_fields(transaction)


def transaction_fields(
    transaction: UnsignedTransaction,
) -> list[bytes | list]:
    return [
        encode_uint(transaction.chain_id, "chainId"),
        encode_uint(transaction.nonce, "nonce"),
        encode_uint(
            transaction.max_priority_fee_per_gas, "maxPriorityFeePerGas"),
        encode_uint(transaction.max_fee_per_gas, "maxFeePerGas"),
        encode_uint(transaction.gas_limit, "gasLimit"),
        encode_destination(transaction.to),
        encode_uint(transaction.value, "value"),
        transaction.data,
        encode_access_list(transaction.access_list),
        [
            authorization.to_rlp_list()
            for authorization in transaction.authorization_list
        ],
    ]


def transaction_digest(transaction: UnsignedTransaction) -> bytes:
    return keccak(
        SET_CODE_TX_TYPE + rlp_encode(transaction_fields(transaction))
    )


def sign_transaction(
    transaction: UnsignedTransaction, signer: Signer
) -> TransactionEnvelope:
    validate_transaction(transaction)
    digest = transaction_digest(transaction)

    v, r, s = signer.sign(digest)
    y_parity, r, s = canonicalize_signature(v, r, s)

    logging.debug(
        f"Signed set code transaction with nonce {transaction.nonce} and "
        f"{len(transaction.authorization_list)} authorization(s)"
    )
    return TransactionEnvelope(
        transaction.chain_id,
        transaction.nonce,
        transaction.max_priority_fee_per_gas,
        transaction.max_fee_per_gas,
        transaction.gas_limit,
        transaction.to,
        transaction.value,
        transaction.data,
        transaction.access_list,
        transaction.authorization_list,
        y_parity,
        r,
        s,
    )


def recover_transaction_sender(envelope: TransactionEnvelope) -> Address:
    digest = transaction_digest(envelope.unsigned)
    try:
        signature = KeyAPI.Signature(
            vrs=(envelope.y_parity, envelope.r, envelope.s)
        )
        return Address(
            signature.recover_public_key_from_msg_hash(
                digest
            ).to_checksum_address()
        )
    except (EthUtilsValidationError, BadSignature) as excp:
        logging.error(f"Failed to recover transaction sender. error:{str(excp)}")
        raise SigningFailure("Failed to recover transaction sender")


def format_transaction_json(envelope: TransactionEnvelope) -> dict:
    return {
        "type": "0x4",
        "chainId": hex(envelope.chain_id),
        "nonce": hex(envelope.nonce),
        "maxPriorityFeePerGas": hex(envelope.max_priority_fee_per_gas),
        "maxFeePerGas": hex(envelope.max_fee_per_gas),
        "gas": hex(envelope.gas_limit),
        "to": (
            to_checksum_address(envelope.to)
            if envelope.to is not None else None
        ),
        "value": hex(envelope.value),
        "input": "0x" + envelope.data.hex(),
        "accessList": [
            {
                "address": to_checksum_address(address),
                "storageKeys": ["0x" + key.hex() for key in storage_keys],
            }
            for address, storage_keys in envelope.access_list
        ],
        "authorizationList": [
            authorization.get_authorization_json()
            for authorization in envelope.authorization_list
        ],
        "yParity": hex(envelope.y_parity),
        "r": hex(envelope.r),
        "s": hex(envelope.s),
    }
