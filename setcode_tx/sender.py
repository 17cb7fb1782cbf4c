import asyncio
import logging
from dataclasses import dataclass

from setcode_tx.exceptions import (SigningFailure, TransportException,
                                   ValidationException,
                                   ValidationExceptionCode)
from setcode_tx.network_info import get_nonce_offset
from setcode_tx.transaction.authorization import (delegation_designator,
                                                  recover_authorization_signer,
                                                  verify_chain_id)
from setcode_tx.transaction.builder import (SetCodeParams,
                                            build_set_code_transaction)
from setcode_tx.transaction.envelope import (TransactionEnvelope,
                                             recover_transaction_sender)
from setcode_tx.transaction.serializer import (serialize_transaction,
                                               transaction_hash)
from setcode_tx.typing import Address, TransactionHash
from setcode_tx.utils.eth_client_utils import (get_account_nonce, get_chain_id,
                                               get_code, get_token_balance,
                                               get_transaction_receipt,
                                               send_raw_transaction)
from setcode_tx.utils.signer import LocalSigner


@dataclass(frozen=True)
class TokenTransfer:
    """
    ERC-20 transfer the delegated call is expected to perform from the
    sender account to recipient.
    """
    token: Address
    recipient: Address
    amount: int


@dataclass
class TokenBalances:
    sender: int
    recipient: int


@dataclass
class VerificationResult:
    status: int | None
    logs_count: int
    delegated: bool
    sender_balance_delta: int | None = None
    recipient_balance_delta: int | None = None
    expected_amount: int | None = None

    @property
    def passed(self) -> bool:
        if self.status != 1 or not self.delegated:
            return False
        if self.expected_amount is None:
            return True
        return (
            self.logs_count > 0 and
            self.sender_balance_delta == self.expected_amount and
            self.recipient_balance_delta == self.expected_amount
        )


@dataclass
class SetCodeResult:
    envelope: TransactionEnvelope
    raw_transaction: bytes
    transaction_hash: TransactionHash
    submitted_hash: TransactionHash | None = None
    broadcast_error: TransportException | None = None
    verification: VerificationResult | None = None
    verification_error: TransportException | None = None

    @property
    def raw_transaction_hex(self) -> str:
        return "0x" + self.raw_transaction.hex()


class SetCodeSender:
    ethereum_node_url: str
    signer: LocalSigner
    chain_id: int | None
    nonce_offset: int | None

    def __init__(
        self,
        ethereum_node_url: str,
        signer: LocalSigner,
        chain_id: int | None = None,
        nonce_offset: int | None = None,
    ):
        self.ethereum_node_url = ethereum_node_url
        self.signer = signer
        self.chain_id = chain_id
        self.nonce_offset = nonce_offset

    async def resolve_chain_id(self) -> int:
        node_chain_id = await get_chain_id(self.ethereum_node_url)
        if self.chain_id is not None and self.chain_id != node_chain_id:
            raise ValidationException(
                ValidationExceptionCode.InvalidChainId,
                f"Invalid chain id {self.chain_id} with Eth node "
                f"{self.ethereum_node_url} chain id {node_chain_id}",
            )
        return verify_chain_id(node_chain_id)

    async def build(self, params: SetCodeParams) -> SetCodeResult:
        params.validate()
        if self.chain_id is not None:
            verify_chain_id(self.chain_id)

        chain_id, sender_nonce = await asyncio.gather(
            self.resolve_chain_id(),
            get_account_nonce(
                self.ethereum_node_url, self.signer.address, "pending"),
        )
        nonce_offset = get_nonce_offset(chain_id, self.nonce_offset)
        logging.debug(
            f"Chain id {chain_id}, sender nonce {sender_nonce}, "
            f"authorization nonce offset {nonce_offset}"
        )

        envelope = build_set_code_transaction(
            params,
            self.signer,
            self.signer.address,
            chain_id,
            sender_nonce,
            nonce_offset,
        )
        self.check_signatures(envelope)

        raw_transaction = serialize_transaction(envelope)
        return SetCodeResult(
            envelope,
            raw_transaction,
            TransactionHash("0x" + transaction_hash(raw_transaction).hex()),
        )

    def check_signatures(self, envelope: TransactionEnvelope) -> None:
        sender = recover_transaction_sender(envelope)
        authority = recover_authorization_signer(
            envelope.authorization_list[0])
        expected = self.signer.address.lower()
        if sender.lower() != expected or authority.lower() != expected:
            raise SigningFailure(
                f"Recovered sender {sender} and authority {authority} "
                f"do not match signer {self.signer.address}"
            )

    async def broadcast(self, result: SetCodeResult) -> SetCodeResult:
        try:
            result.submitted_hash = await send_raw_transaction(
                self.ethereum_node_url, result.raw_transaction
            )
            logging.info(f"Submitted set code transaction {result.submitted_hash}")
        except TransportException as excp:
            logging.error(f"Broadcast failed: {excp.message}")
            result.broadcast_error = excp
        return result

    async def send(
        self,
        params: SetCodeParams,
        broadcast: bool = True,
        verify: bool = False,
        raise_on_failure: bool = False,
        verify_timeout: float = 60,
        token_transfer: TokenTransfer | None = None,
    ) -> SetCodeResult:
        """
        Builds and optionally broadcasts and verifies the transaction.
        Transport failures after the build are recorded on the returned
        result, which always carries the raw transaction, unless
        raise_on_failure is set.
        """
        result = await self.build(params)
        if not broadcast:
            return result

        balances_before = None
        if verify and token_transfer is not None:
            try:
                balances_before = await self.get_token_balances(
                    token_transfer)
            except TransportException as excp:
                self.record_verification_error(result, excp, raise_on_failure)

        await self.broadcast(result)
        if result.broadcast_error is not None:
            if raise_on_failure:
                raise result.broadcast_error
            return result

        if verify and result.verification_error is None:
            try:
                result.verification = await self.verify(
                    result.submitted_hash,
                    params.delegate_address,
                    timeout=verify_timeout,
                    token_transfer=token_transfer,
                    balances_before=balances_before,
                )
            except TransportException as excp:
                self.record_verification_error(result, excp, raise_on_failure)
        return result

    def record_verification_error(
        self,
        result: SetCodeResult,
        excp: TransportException,
        raise_on_failure: bool,
    ) -> None:
        logging.error(f"Verification failed: {excp.message}")
        result.verification_error = excp
        if raise_on_failure:
            raise excp

    async def get_token_balances(
        self, token_transfer: TokenTransfer
    ) -> TokenBalances:
        sender_balance, recipient_balance = await asyncio.gather(
            get_token_balance(
                self.ethereum_node_url,
                token_transfer.token,
                self.signer.address,
            ),
            get_token_balance(
                self.ethereum_node_url,
                token_transfer.token,
                token_transfer.recipient,
            ),
        )
        return TokenBalances(sender_balance, recipient_balance)

    async def wait_for_receipt(
        self,
        tx_hash: TransactionHash,
        timeout: float = 60,
        poll_interval: float = 1,
    ) -> dict | None:
        elapsed = 0.0
        while True:
            receipt = await get_transaction_receipt(
                self.ethereum_node_url, tx_hash)
            if receipt is not None:
                return receipt
            if elapsed >= timeout:
                logging.warning(f"No receipt for {tx_hash} after {timeout}s")
                return None
            await asyncio.sleep(poll_interval)
            elapsed += poll_interval

    async def verify(
        self,
        tx_hash: TransactionHash,
        delegate_address,
        timeout: float = 60,
        poll_interval: float = 1,
        token_transfer: TokenTransfer | None = None,
        balances_before: TokenBalances | None = None,
    ) -> VerificationResult:
        """
        Waits for the receipt and checks the delegation designator on the
        sender account. With a token_transfer and the balances taken before
        broadcast, the sender balance must drop and the recipient balance
        must rise by the transferred amount.
        """
        receipt = await self.wait_for_receipt(tx_hash, timeout, poll_interval)
        if receipt is None:
            return VerificationResult(None, 0, False)

        status = int(receipt["status"], 16) if "status" in receipt else None
        logs_count = len(receipt.get("logs", []))

        code = await get_code(self.ethereum_node_url, self.signer.address)
        expected_code = "0x" + delegation_designator(delegate_address).hex()
        delegated = code.lower() == expected_code
        logging.info(
            f"Receipt status {status}, logs {logs_count}, "
            f"delegated code installed: {delegated}"
        )
        verification = VerificationResult(status, logs_count, delegated)
        if token_transfer is None or balances_before is None:
            return verification

        balances_after = await self.get_token_balances(token_transfer)
        verification.sender_balance_delta = (
            balances_before.sender - balances_after.sender)
        verification.recipient_balance_delta = (
            balances_after.recipient - balances_before.recipient)
        verification.expected_amount = token_transfer.amount
        logging.info(
            f"Token {token_transfer.token} balance changes: sender "
            f"-{verification.sender_balance_delta}, recipient "
            f"+{verification.recipient_balance_delta}"
        )
        return verification
