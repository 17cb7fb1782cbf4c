import pytest

import setcode_tx.sender as sender_module
from setcode_tx.exceptions import (TransportException, TransportExceptionCode,
                                   ValidationException,
                                   ValidationExceptionCode)
from setcode_tx.sender import SetCodeSender, TokenTransfer
from setcode_tx.transaction.builder import SetCodeParams
from setcode_tx.transaction.serializer import decode_transaction

NODE_URL = "http://127.0.0.1:8545"
TOKEN = "0x" + "aa" * 20
RECIPIENT = "0x" + "bb" * 20


class FakeEthClient:
    def __init__(self, chain_id=1337, nonce=0):
        self.chain_id = chain_id
        self.nonce = nonce
        self.calls = []
        self.sent = []
        self.broadcast_error = None
        self.receipts = []
        self.receipt_error = None
        self.code = "0x"
        self.balances = {}
        self.balances_after = None

    async def get_chain_id(self, url):
        self.calls.append("eth_chainId")
        return self.chain_id

    async def get_account_nonce(self, url, address, block_tag="pending"):
        self.calls.append("eth_getTransactionCount")
        assert block_tag == "pending"
        return self.nonce

    async def send_raw_transaction(self, url, raw_transaction):
        self.calls.append("eth_sendRawTransaction")
        if self.broadcast_error is not None:
            raise self.broadcast_error
        self.sent.append(raw_transaction)
        if self.balances_after is not None:
            self.balances = self.balances_after
        return "0x" + "ab" * 32

    async def get_transaction_receipt(self, url, tx_hash):
        self.calls.append("eth_getTransactionReceipt")
        if self.receipt_error is not None:
            raise self.receipt_error
        return self.receipts.pop(0) if self.receipts else None

    async def get_code(self, url, address, block_tag="latest"):
        self.calls.append("eth_getCode")
        return self.code

    async def get_token_balance(self, url, token, owner):
        self.calls.append("eth_call")
        return self.balances.get(owner.lower(), 0)


@pytest.fixture
def eth_client(monkeypatch):
    client = FakeEthClient()
    for name in [
        "get_chain_id",
        "get_account_nonce",
        "send_raw_transaction",
        "get_transaction_receipt",
        "get_code",
        "get_token_balance",
    ]:
        monkeypatch.setattr(sender_module, name, getattr(client, name))
    return client


@pytest.fixture
def params(delegate_address):
    return SetCodeParams(
        delegate_address=delegate_address,
        gas_limit=200_000,
        max_fee_per_gas=1_500_000_000,
        max_priority_fee_per_gas=100_000_000,
    )


@pytest.mark.asyncio
async def test_build_uses_network_chain_id_and_pending_nonce(
    eth_client, signer, params
):
    eth_client.nonce = 5
    result = await SetCodeSender(NODE_URL, signer).build(params)

    envelope = decode_transaction(result.raw_transaction)
    assert envelope.chain_id == 1337
    assert envelope.nonce == 5
    # unknown chain, default offset of 1
    assert envelope.authorization_list[0].nonce == 6
    assert envelope.to == bytes.fromhex(signer.address[2:])
    assert result.raw_transaction_hex.startswith("0x04")
    assert eth_client.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "chain_id, override, expected_auth_nonce",
    [
        (84532, None, 6),
        (42793, None, 5),
        (128123, None, 5),
        (42793, 1, 6),
        (84532, 0, 5),
    ],
)
async def test_nonce_offset_resolution(
    eth_client, signer, params, chain_id, override, expected_auth_nonce
):
    eth_client.chain_id = chain_id
    eth_client.nonce = 5
    result = await SetCodeSender(
        NODE_URL, signer, nonce_offset=override).build(params)
    assert result.envelope.authorization_list[0].nonce == expected_auth_nonce


@pytest.mark.asyncio
async def test_configured_chain_id_must_match_node(eth_client, signer, params):
    with pytest.raises(ValidationException) as excinfo:
        await SetCodeSender(NODE_URL, signer, chain_id=1).build(params)
    assert (
        excinfo.value.exception_code == ValidationExceptionCode.InvalidChainId
    )


@pytest.mark.asyncio
async def test_node_chain_id_zero_is_rejected(eth_client, signer, params):
    eth_client.chain_id = 0
    with pytest.raises(ValidationException) as excinfo:
        await SetCodeSender(NODE_URL, signer).build(params)
    assert (
        excinfo.value.exception_code == ValidationExceptionCode.InvalidChainId
    )


@pytest.mark.asyncio
async def test_invalid_params_fail_before_network_io(eth_client, signer):
    params = SetCodeParams(
        delegate_address="0x1234",
        gas_limit=200_000,
        max_fee_per_gas=1,
        max_priority_fee_per_gas=1,
    )
    with pytest.raises(ValidationException) as excinfo:
        await SetCodeSender(NODE_URL, signer).send(params)
    assert (
        excinfo.value.exception_code == ValidationExceptionCode.InvalidAddress
    )
    assert eth_client.calls == []


@pytest.mark.asyncio
async def test_send_broadcasts_raw_transaction(eth_client, signer, params):
    result = await SetCodeSender(NODE_URL, signer).send(params)
    assert eth_client.sent == [result.raw_transaction]
    assert result.submitted_hash == "0x" + "ab" * 32
    assert result.broadcast_error is None


@pytest.mark.asyncio
async def test_broadcast_failure_keeps_raw_transaction(
    eth_client, signer, params
):
    eth_client.broadcast_error = TransportException(
        TransportExceptionCode.RpcError,
        "invalid sender",
        {"code": -32000, "message": "invalid sender"},
    )
    result = await SetCodeSender(NODE_URL, signer).send(params)
    assert result.submitted_hash is None
    assert result.broadcast_error is eth_client.broadcast_error
    assert result.raw_transaction[0] == 0x04

    with pytest.raises(TransportException) as excinfo:
        await SetCodeSender(NODE_URL, signer).send(
            params, raise_on_failure=True)
    assert excinfo.value.error["message"] == "invalid sender"


@pytest.mark.asyncio
async def test_send_and_verify_delegation(
    eth_client, signer, params, delegate_address
):
    eth_client.receipts = [
        {"status": "0x1", "logs": [{"address": delegate_address}]}]
    eth_client.code = "0xef0100" + "11" * 20
    sender = SetCodeSender(NODE_URL, signer)
    result = await sender.send(params, verify=True)

    assert result.verification is not None
    assert result.verification.status == 1
    assert result.verification.logs_count == 1
    assert result.verification.delegated is True


@pytest.mark.asyncio
async def test_verify_reports_missing_delegation(
    eth_client, signer, params, delegate_address
):
    eth_client.receipts = [{"status": "0x0", "logs": []}]
    sender = SetCodeSender(NODE_URL, signer)
    verification = await sender.verify("0x" + "ab" * 32, delegate_address)
    assert verification.status == 0
    assert verification.delegated is False


@pytest.mark.asyncio
async def test_verify_times_out_without_receipt(
    eth_client, signer, delegate_address
):
    sender = SetCodeSender(NODE_URL, signer)
    verification = await sender.verify(
        "0x" + "ab" * 32, delegate_address, timeout=0, poll_interval=0)
    assert verification.status is None
    assert verification.delegated is False
    assert "eth_getCode" not in eth_client.calls


@pytest.mark.asyncio
async def test_receipt_failure_keeps_submitted_transaction(
    eth_client, signer, params
):
    eth_client.receipt_error = TransportException(
        TransportExceptionCode.ConnectionError, "connection reset")
    result = await SetCodeSender(NODE_URL, signer).send(params, verify=True)

    assert result.submitted_hash == "0x" + "ab" * 32
    assert eth_client.sent == [result.raw_transaction]
    assert result.verification is None
    assert result.verification_error is eth_client.receipt_error

    with pytest.raises(TransportException):
        await SetCodeSender(NODE_URL, signer).send(
            params, verify=True, raise_on_failure=True)


@pytest.mark.asyncio
async def test_verify_token_balance_changes(
    eth_client, signer, params
):
    sender_address = signer.address.lower()
    eth_client.balances = {sender_address: 1000, RECIPIENT: 0}
    eth_client.balances_after = {sender_address: 900, RECIPIENT: 100}
    eth_client.receipts = [
        {"status": "0x1", "logs": [{"address": TOKEN}]}]
    eth_client.code = "0xef0100" + "11" * 20

    result = await SetCodeSender(NODE_URL, signer).send(
        params,
        verify=True,
        token_transfer=TokenTransfer(TOKEN, RECIPIENT, 100),
    )

    verification = result.verification
    assert verification.sender_balance_delta == 100
    assert verification.recipient_balance_delta == 100
    assert verification.expected_amount == 100
    assert verification.passed is True
    assert eth_client.calls.count("eth_call") == 4


@pytest.mark.asyncio
async def test_verify_fails_when_delegated_call_moves_no_tokens(
    eth_client, signer, params
):
    eth_client.balances = {signer.address.lower(): 1000, RECIPIENT: 0}
    eth_client.receipts = [{"status": "0x1", "logs": []}]
    eth_client.code = "0xef0100" + "11" * 20

    result = await SetCodeSender(NODE_URL, signer).send(
        params,
        verify=True,
        token_transfer=TokenTransfer(TOKEN, RECIPIENT, 100),
    )

    verification = result.verification
    assert verification.delegated is True
    assert verification.sender_balance_delta == 0
    assert verification.recipient_balance_delta == 0
    assert verification.passed is False
