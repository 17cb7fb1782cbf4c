import logging
from dataclasses import dataclass, field

from setcode_tx.exceptions import ValidationException, ValidationExceptionCode
from setcode_tx.transaction.authorization import (authorization_nonce,
                                                  sign_authorization,
                                                  verify_chain_id)
from setcode_tx.transaction.envelope import (AccessList, TransactionEnvelope,
                                             UnsignedTransaction,
                                             sign_transaction)
from setcode_tx.typing import Address
from setcode_tx.utils.canonical import (encode_access_list, encode_address,
                                        encode_destination, encode_uint)
from setcode_tx.utils.signer import Signer


@dataclass(frozen=True)
class SetCodeParams:
    """
    Inputs of a delegated execution transaction. to=None targets the
    sender's own account so the delegate code runs in the sender context.
    """
    delegate_address: Address | bytes
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    to: Address | bytes | None = None
    value: int = 0
    data: bytes = b""
    access_list: AccessList = field(default_factory=tuple)

    def validate(self) -> None:
        encode_address(self.delegate_address, "delegateAddress")
        if self.to is not None:
            encode_destination(self.to)
        encode_uint(self.gas_limit, "gasLimit")
        encode_uint(self.max_fee_per_gas, "maxFeePerGas")
        encode_uint(self.max_priority_fee_per_gas, "maxPriorityFeePerGas")
        encode_uint(self.value, "value")
        encode_access_list(self.access_list)
        if not isinstance(self.data, bytes):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid data field, expected bytes.",
            )


def build_set_code_transaction(
    params: SetCodeParams,
    signer: Signer,
    sender_address: Address | bytes,
    chain_id: int,
    sender_nonce: int,
    nonce_offset: int,
) -> TransactionEnvelope:
    """
    Signs the authorization and the outer transaction with the same key.
    The sender is also the authority, so the authorization nonce is the
    sender nonce shifted by the network's nonce_offset.
    """
    params.validate()
    verify_chain_id(chain_id)
    sender = encode_address(sender_address, "sender")

    auth_nonce = authorization_nonce(sender_nonce, nonce_offset)
    authorization = sign_authorization(
        chain_id, params.delegate_address, auth_nonce, signer
    )

    to = sender if params.to is None else encode_destination(params.to)
    logging.info(
        f"Building set code transaction to 0x{to.hex()} with nonce "
        f"{sender_nonce} and authorization nonce {auth_nonce}"
    )
    return sign_transaction(
        UnsignedTransaction(
            chain_id=chain_id,
            nonce=sender_nonce,
            max_priority_fee_per_gas=params.max_priority_fee_per_gas,
            max_fee_per_gas=params.max_fee_per_gas,
            gas_limit=params.gas_limit,
            to=to,
            value=params.value,
            data=params.data,
            authorization_list=(authorization,),
            access_list=params.access_list,
        ),
        signer,
    )
