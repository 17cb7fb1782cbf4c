# rlp([chain_id, nonce, max_priority_fee_per_gas, max_fee_per_gas,
#   gas_limit, destination, value, data, access_list, authorization_list,
#   signature_y_parity, signature_r, signature_s]
# )
# authorization_list = [[chain_id, address, nonce, y_parity, r, s], ...]

from eth_utils import keccak
from rlp import decode as rlp_decode
from rlp import encode as rlp_encode
from rlp.exceptions import DecodingError

from setcode_tx.exceptions import ValidationException, ValidationExceptionCode
from setcode_tx.transaction.authorization import Authorization
from setcode_tx.transaction.envelope import (SET_CODE_TX_TYPE,
                                             TransactionEnvelope,
                                             transaction_fields)
from setcode_tx.utils.canonical import (ADDRESS_LENGTH, STORAGE_KEY_LENGTH,
                                        decode_uint, encode_uint)

NUMBER_OF_TRANSACTION_FIELDS = 13
NUMBER_OF_AUTHORIZATION_FIELDS = 6


def serialize_transaction(envelope: TransactionEnvelope) -> bytes:
    fields = transaction_fields(envelope.unsigned)
    fields += [
        encode_uint(envelope.y_parity, "yParity"),
        encode_uint(envelope.r, "r"),
        encode_uint(envelope.s, "s"),
    ]
    return SET_CODE_TX_TYPE + rlp_encode(fields)


def serialize_transaction_hex(envelope: TransactionEnvelope) -> str:
    return "0x" + serialize_transaction(envelope).hex()


def transaction_hash(raw_transaction: bytes) -> bytes:
    return keccak(raw_transaction)


def _decode_address(value, field_name: str) -> bytes:
    if not isinstance(value, bytes) or len(value) != ADDRESS_LENGTH:
        raise ValidationException(
            ValidationExceptionCode.InvalidAddress,
            f"Invalid address in field {field_name}",
        )
    return value


def _decode_list(value, field_name: str) -> list:
    if not isinstance(value, list):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Expected a list in field {field_name}",
        )
    return value


def _decode_authorization(item) -> Authorization:
    item = _decode_list(item, "authorizationList")
    if len(item) != NUMBER_OF_AUTHORIZATION_FIELDS:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid authorization field count : {len(item)}",
        )
    chain_id, address, nonce, y_parity, r, s = item
    return Authorization(
        decode_uint(chain_id, "authorization.chainId"),
        _decode_address(address, "authorization.address"),
        decode_uint(nonce, "authorization.nonce"),
        decode_uint(y_parity, "authorization.yParity"),
        decode_uint(r, "authorization.r"),
        decode_uint(s, "authorization.s"),
    )


def _decode_access_list(value) -> tuple[tuple[bytes, tuple[bytes, ...]], ...]:
    access_list = []
    for entry in _decode_list(value, "accessList"):
        entry = _decode_list(entry, "accessList")
        if len(entry) != 2:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid access list entry",
            )
        address, storage_keys = entry
        keys = []
        for key in _decode_list(storage_keys, "accessList.storageKeys"):
            if not isinstance(key, bytes) or len(key) != STORAGE_KEY_LENGTH:
                raise ValidationException(
                    ValidationExceptionCode.InvalidFields,
                    "Invalid access list storage key",
                )
            keys.append(key)
        access_list.append(
            (_decode_address(address, "accessList.address"), tuple(keys))
        )
    return tuple(access_list)


def decode_transaction(raw_transaction: bytes | str) -> TransactionEnvelope:
    if isinstance(raw_transaction, str):
        try:
            raw_transaction = bytes.fromhex(
                raw_transaction[2:]
                if raw_transaction.startswith("0x") else raw_transaction
            )
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid hex encoded transaction",
            )
    if raw_transaction[:1] != SET_CODE_TX_TYPE:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            "Not a set code (0x04) transaction",
        )
    try:
        fields = rlp_decode(raw_transaction[1:], strict=True)
    except DecodingError as excp:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid rlp payload : {str(excp)}",
        )
    fields = _decode_list(fields, "transaction")
    if len(fields) != NUMBER_OF_TRANSACTION_FIELDS:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid transaction field count : {len(fields)}",
        )
    (
        chain_id, nonce, max_priority_fee_per_gas, max_fee_per_gas,
        gas_limit, to, value, data, access_list, authorization_list,
        y_parity, r, s
    ) = fields

    if not isinstance(data, bytes) or not isinstance(to, bytes):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            "Invalid to or data field",
        )
    return TransactionEnvelope(
        decode_uint(chain_id, "chainId"),
        decode_uint(nonce, "nonce"),
        decode_uint(max_priority_fee_per_gas, "maxPriorityFeePerGas"),
        decode_uint(max_fee_per_gas, "maxFeePerGas"),
        decode_uint(gas_limit, "gasLimit"),
        _decode_address(to, "to") if len(to) > 0 else None,
        decode_uint(value, "value"),
        data,
        _decode_access_list(access_list),
        tuple(
            _decode_authorization(item)
            for item in _decode_list(authorization_list, "authorizationList")
        ),
        decode_uint(y_parity, "yParity"),
        decode_uint(r, "r"),
        decode_uint(s, "s"),
    )
