import json
import logging
import shlex
from typing import Any

from aiohttp import ClientError, ClientSession
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes

from setcode_tx.exceptions import TransportException, TransportExceptionCode
from setcode_tx.typing import Address, TransactionHash
from setcode_tx.utils.encode import encode_function_call


def create_json_rpc_request(method: str, params=None) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params if params is not None else [],
    }


async def send_rpc_request_to_eth_client(
    ethereum_node_url: str,
    method: str,
    params=None,
) -> Any:
    """
    Single JSON-RPC call, no retries. Returns the "result" member and
    raises TransportException on connection errors, non 2xx responses,
    invalid json or a JSON-RPC error member.
    """
    json_request = create_json_rpc_request(method, params)
    headers = {
        "content-type": "application/json",
        "connection": "keep-alive"
    }
    try:
        async with ClientSession() as session:
            async with session.post(
                ethereum_node_url,
                json=json_request,
                headers=headers
            ) as response:
                resp = await response.read()
                status = response.status
    except ClientError as excp:
        logging.error(f"Call to node rpc {method} failed. error: {str(excp)}")
        raise TransportException(
            TransportExceptionCode.ConnectionError,
            f"Connection to {ethereum_node_url} failed",
            excp,
        )

    try:
        json_result = json.loads(resp)
    except json.decoder.JSONDecodeError as excp:
        logging.error(
            f"Invalid json response from eth client for {method} "
            f"with http status {status}"
        )
        raise TransportException(
            TransportExceptionCode.InvalidResponse,
            f"Invalid json response from eth client, http status {status}",
            resp.decode(errors="replace") if resp else excp,
        )

    if isinstance(json_result, dict) and "error" in json_result:
        err = json_result["error"]
        err_message = err.get("message", "") if isinstance(err, dict) else str(err)
        logging.error(
            f"Call to node rpc {method} failed with error: {err_message}"
        )
        raise TransportException(
            TransportExceptionCode.RpcError,
            err_message,
            err,
        )
    if status < 200 or status >= 300:
        logging.error(f"Call to node rpc {method} failed with status {status}")
        raise TransportException(
            TransportExceptionCode.InvalidResponse,
            f"Http status {status} from eth client",
            json_result,
        )
    if not isinstance(json_result, dict) or "result" not in json_result:
        raise TransportException(
            TransportExceptionCode.InvalidResponse,
            "Missing result in eth client response",
            json_result,
        )
    return json_result["result"]


async def get_chain_id(ethereum_node_url: str) -> int:
    chain_id_hex = await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_chainId", []
    )
    return int(chain_id_hex, 16)


async def get_account_nonce(
    ethereum_node_url: str, address: Address, block_tag: str = "pending"
) -> int:
    nonce_hex = await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_getTransactionCount", [address, block_tag]
    )
    return int(nonce_hex, 16)


async def get_code(
    ethereum_node_url: str, address: Address, block_tag: str = "latest"
) -> str:
    return await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_getCode", [address, block_tag]
    )


async def get_transaction_receipt(
    ethereum_node_url: str, transaction_hash: TransactionHash
) -> dict | None:
    return await send_rpc_request_to_eth_client(
        ethereum_node_url, "eth_getTransactionReceipt", [transaction_hash]
    )


async def eth_call(
    ethereum_node_url: str,
    to: Address,
    data: bytes,
    block_tag: str = "latest",
) -> bytes:
    result = await send_rpc_request_to_eth_client(
        ethereum_node_url,
        "eth_call",
        [{"to": to, "data": "0x" + data.hex()}, block_tag],
    )
    try:
        return to_bytes(hexstr=result)
    except (TypeError, ValueError):
        raise TransportException(
            TransportExceptionCode.InvalidResponse,
            "Invalid eth_call result",
            result,
        )


async def get_token_balance(
    ethereum_node_url: str, token: Address, owner: Address
) -> int:
    result = await eth_call(
        ethereum_node_url,
        token,
        encode_function_call("balanceOf(address)", [owner]),
    )
    try:
        (balance,) = decode(["uint256"], result)
    except DecodingError:
        raise TransportException(
            TransportExceptionCode.InvalidResponse,
            f"Invalid balanceOf result from token {token}",
            "0x" + result.hex(),
        )
    return balance


async def send_raw_transaction(
    ethereum_node_url: str, raw_transaction: bytes
) -> TransactionHash:
    return TransactionHash(
        await send_rpc_request_to_eth_client(
            ethereum_node_url,
            "eth_sendRawTransaction",
            ["0x" + raw_transaction.hex()],
        )
    )


def raw_transaction_request_body(raw_transaction: bytes) -> str:
    return json.dumps(
        create_json_rpc_request(
            "eth_sendRawTransaction", ["0x" + raw_transaction.hex()]
        )
    )


def curl_command(ethereum_node_url: str, raw_transaction: bytes) -> str:
    return (
        f"curl -s -X POST {shlex.quote(ethereum_node_url)} "
        "-H 'content-type: application/json' "
        f"--data {shlex.quote(raw_transaction_request_body(raw_transaction))}"
    )
