import asyncio
import logging
import sys

import uvloop

from setcode_tx.exceptions import (SigningFailure, TransportException,
                                   ValidationException)
from setcode_tx.sender import SetCodeResult, SetCodeSender
from setcode_tx.transaction.envelope import format_transaction_json
from setcode_tx.utils.eth_client_utils import curl_command

from .cli_manager import InitData, parse_args


def print_result(init_data: InitData, result: SetCodeResult) -> None:
    if init_data.is_verbose:
        print(format_transaction_json(result.envelope))
    print("Raw 0x04 tx:", result.raw_transaction_hex)
    print("Tx hash:", result.transaction_hash)
    print("Curl:")
    print(curl_command(init_data.ethereum_node_url, result.raw_transaction))
    if result.submitted_hash is not None:
        print("Submitted:", result.submitted_hash)
    if result.verification is not None:
        verification = result.verification
        print(
            "RESULT:",
            "PASS" if verification.passed else "FAIL",
            f"(status={verification.status}, logs={verification.logs_count},"
            f" delegated={verification.delegated})",
        )
        if verification.expected_amount is not None:
            print(
                "Token balance changes:",
                f"sender=-{verification.sender_balance_delta}",
                f"recipient=+{verification.recipient_balance_delta}",
                f"expected={verification.expected_amount}",
            )


async def main(cmd_args=sys.argv[1:]) -> int:
    init_data = parse_args(cmd_args)
    sender = SetCodeSender(
        init_data.ethereum_node_url,
        init_data.signer,
        init_data.chain_id,
        init_data.auth_nonce_offset,
    )
    try:
        result = await sender.send(
            init_data.params,
            broadcast=init_data.broadcast,
            verify=init_data.verify,
            verify_timeout=init_data.verify_timeout,
            token_transfer=init_data.token_transfer,
        )
    except ValidationException as excp:
        logging.critical(f"{excp.exception_code.name}: {excp.message}")
        return 1
    except SigningFailure as excp:
        logging.critical(f"Signing failed: {excp.message}")
        return 1
    except TransportException as excp:
        logging.critical(
            f"Eth client request failed: {excp.message} {str(excp.error)}")
        return 1

    print_result(init_data, result)
    if result.broadcast_error is not None:
        print(
            "Broadcast failed:",
            result.broadcast_error.message,
            result.broadcast_error.error,
            file=sys.stderr,
        )
        return 1
    if result.verification_error is not None:
        print(
            "Verification failed:",
            result.verification_error.message,
            result.verification_error.error,
            file=sys.stderr,
        )
        return 1
    return 0


def run() -> None:
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
