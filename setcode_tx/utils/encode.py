from enum import Enum
from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector


class DelegateFunction(Enum):
    simpleTransfer = "simpleTransfer(address,address,uint256)"
    manageTokens = "manageTokens(address,address,address,uint256)"

    def __str__(self):
        return self.name


def encode_function_call(function_signature: str, params: list[Any]) -> bytes:
    arg_types = function_signature[
        function_signature.index("(") + 1:function_signature.rindex(")")
    ]
    types = [t for t in arg_types.split(",") if t != ""]
    return (
        function_signature_to_4byte_selector(function_signature) +
        encode(types, params)
    )


def encode_simple_transfer_calldata(
    token: str, recipient: str, amount: int
) -> bytes:
    return encode_function_call(
        DelegateFunction.simpleTransfer.value, [token, recipient, amount]
    )


def encode_manage_tokens_calldata(
    token: str, spender: str, recipient: str, amount: int
) -> bytes:
    return encode_function_call(
        DelegateFunction.manageTokens.value,
        [token, spender, recipient, amount],
    )
