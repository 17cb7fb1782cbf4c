# Field encoding helpers shared by the authorization and transaction
# builders. Every scalar placed in an rlp list goes through encode_uint so
# that integers are big-endian with no leading zero bytes and zero is the
# empty byte string.

from eth_utils import big_endian_to_int, int_to_big_endian, is_hex, to_bytes

from setcode_tx.exceptions import (SigningFailure, ValidationException,
                                   ValidationExceptionCode)

ADDRESS_LENGTH = 20
STORAGE_KEY_LENGTH = 32


def encode_uint(value: int, field_name: str = "value") -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint value : {value!r} in field {field_name}",
        )
    if value < 0:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Negative uint value : {value} in field {field_name}",
        )
    if value == 0:
        return b""
    return int_to_big_endian(value)


def decode_uint(value: bytes, field_name: str = "value") -> int:
    """
    Inverse of encode_uint. Rejects non canonical encodings so that a
    decoded transaction re-serializes to the same bytes.
    """
    if not isinstance(value, bytes):
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Expected a byte string in field {field_name}",
        )
    if len(value) > 0 and value[0] == 0:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Non canonical integer encoding in field {field_name}",
        )
    return big_endian_to_int(value) if value else 0


def strip_leading_zeros(value: bytes) -> bytes:
    return value.lstrip(b"\x00")


def canonicalize_scalar(value: int | bytes | str) -> bytes:
    """
    Minimal big-endian form of a signature scalar given as an int, raw
    bytes or a 0x-hex string (possibly zero padded to 32 bytes).
    """
    if isinstance(value, int):
        return encode_uint(value, "signature")
    if isinstance(value, str):
        value = to_bytes(hexstr=value)
    return strip_leading_zeros(value)


def to_y_parity(v: int) -> int:
    if v in (0, 1):
        return v
    if v in (27, 28):
        return v - 27
    raise SigningFailure(f"Unexpected signature recovery id : {v}")


def canonicalize_signature(
    v: int, r: int | bytes | str, s: int | bytes | str
) -> tuple[int, int, int]:
    y_parity = to_y_parity(v)
    r_bytes = canonicalize_scalar(r)
    s_bytes = canonicalize_scalar(s)
    if len(r_bytes) > 32 or len(s_bytes) > 32:
        raise SigningFailure("Signature scalar longer than 32 bytes")
    return y_parity, big_endian_to_int(r_bytes), big_endian_to_int(s_bytes)


def encode_address(value: str | bytes | None, field_name: str = "address") -> bytes:
    if isinstance(value, str):
        if not value.startswith("0x") or not is_hex(value):
            raise ValidationException(
                ValidationExceptionCode.InvalidAddress,
                f"Invalid address value : {value} in field {field_name}",
            )
        value = to_bytes(hexstr=value)
    if not isinstance(value, bytes) or len(value) != ADDRESS_LENGTH:
        raise ValidationException(
            ValidationExceptionCode.InvalidAddress,
            f"Invalid address value : {value!r} in field {field_name}",
        )
    return value


def encode_destination(value: str | bytes | None) -> bytes:
    if value is None:
        return b""
    return encode_address(value, "to")


def encode_storage_key(value: str | bytes) -> bytes:
    if isinstance(value, str):
        value = to_bytes(hexstr=value)
    if len(value) != STORAGE_KEY_LENGTH:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid storage key length : {len(value)}",
        )
    return value


def encode_access_list(
    access_list: tuple[tuple[bytes, tuple[bytes, ...]], ...]
) -> list[list[bytes | list[bytes]]]:
    return [
        [
            encode_address(address, "accessList.address"),
            [encode_storage_key(key) for key in storage_keys],
        ]
        for address, storage_keys in access_list
    ]
