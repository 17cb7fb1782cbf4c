import logging
import os
import re
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from dataclasses import dataclass

from setcode_tx.sender import TokenTransfer
from setcode_tx.transaction.builder import SetCodeParams
from setcode_tx.typing import Address
from setcode_tx.utils.encode import (DelegateFunction,
                                     encode_manage_tokens_calldata,
                                     encode_simple_transfer_calldata)
from setcode_tx.utils.import_key import load_signer
from setcode_tx.utils.signer import LocalSigner


@dataclass()
class InitData:
    ethereum_node_url: str
    signer: LocalSigner
    params: SetCodeParams
    chain_id: int | None
    auth_nonce_offset: int | None
    broadcast: bool
    verify: bool
    verify_timeout: int
    token_transfer: TokenTransfer | None
    is_verbose: bool


def address(ep: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def unsigned_int(value):
    try:
        ivalue = int(value, 0) if isinstance(value, str) else int(value)
    except ValueError:
        raise ArgumentTypeError(f"{value} is an invalid unsigned int value")
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def positive_int(value):
    ivalue = unsigned_int(value)
    if ivalue == 0:
        raise ArgumentTypeError(f"{value} must be greater than zero")
    return ivalue


def signed_int(value):
    try:
        return int(value)
    except ValueError:
        raise ArgumentTypeError(f"{value} is an invalid int value")


def hex_bytes(value: str) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ArgumentTypeError(f"Wrong hex format : {value}")
    try:
        return bytes.fromhex(value[2:])
    except ValueError:
        raise ArgumentTypeError(f"Wrong hex format : {value}")


def delegate_function(value):
    try:
        return DelegateFunction[value]
    except KeyError:
        raise ArgumentTypeError(f"Unknown delegate function : {value}")


def boolean(value):
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes")


def _get_env_or_default(env_var, default):
    """
    Helper function to get the value from an environment variable or return
    the default value. argparse converts a string default with the option
    type, so an invalid environment value is reported as a usage error.
    """
    value = os.getenv(env_var, None)
    if value is not None:
        return value
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="setcode-tx",
        description=(
            "Build, sign and send an EIP-7702 (type 0x04) set code "
            "transaction delegating the sender account to a contract"
        ),
    )

    group = parser.add_mutually_exclusive_group(required=False)

    group.add_argument(
        "--private_key",
        type=str,
        help="Sender private key",
        nargs="?",
        default=_get_env_or_default("SETCODE_PRIVATE_KEY", None),
    )

    group.add_argument(
        "--keystore_file_path",
        type=str,
        help="Sender keystore file path",
        nargs="?",
        default=_get_env_or_default("SETCODE_KEYSTORE_FILE_PATH", None),
    )

    parser.add_argument(
        "--keystore_file_password",
        type=str,
        help="Sender keystore file password - defaults to no password",
        nargs="?",
        const="",
        default=_get_env_or_default("SETCODE_KEYSTORE_FILE_PASSWORD", ""),
    )

    parser.add_argument(
        "--ethereum_node_url",
        type=str,
        help="Eth client rpc url - defaults to http://localhost:8545",
        nargs="?",
        const="http://localhost:8545",
        default=_get_env_or_default(
            "SETCODE_ETHEREUM_NODE_URL", "http://localhost:8545"),
    )

    parser.add_argument(
        "--chain_id",
        type=positive_int,
        help="Expected chain id - defaults to the chain id of the Eth client",
        nargs="?",
        default=_get_env_or_default("SETCODE_CHAIN_ID", None),
    )

    parser.add_argument(
        "--delegate_address",
        type=address,
        help="Contract whose code the sender account delegates to",
        nargs="?",
        default=_get_env_or_default("SETCODE_DELEGATE_ADDRESS", None),
    )

    parser.add_argument(
        "--to",
        type=address,
        help="Transaction destination - defaults to the sender account",
        nargs="?",
        default=_get_env_or_default("SETCODE_TO", None),
    )

    parser.add_argument(
        "--value",
        type=unsigned_int,
        help="Transaction value in wei - defaults to 0",
        nargs="?",
        const=0,
        default=_get_env_or_default("SETCODE_VALUE", 0),
    )

    parser.add_argument(
        "--gas_limit",
        type=positive_int,
        help="Transaction gas limit - defaults to 300000",
        nargs="?",
        const=300_000,
        default=_get_env_or_default("SETCODE_GAS_LIMIT", 300_000),
    )

    parser.add_argument(
        "--max_fee_per_gas",
        type=unsigned_int,
        help="Max fee per gas in wei - defaults to 1500000000",
        nargs="?",
        const=1_500_000_000,
        default=_get_env_or_default(
            "SETCODE_MAX_FEE_PER_GAS", 1_500_000_000),
    )

    parser.add_argument(
        "--max_priority_fee_per_gas",
        type=unsigned_int,
        help="Max priority fee per gas in wei - defaults to 100000000",
        nargs="?",
        const=100_000_000,
        default=_get_env_or_default(
            "SETCODE_MAX_PRIORITY_FEE_PER_GAS", 100_000_000),
    )

    parser.add_argument(
        "--auth_nonce_offset",
        type=signed_int,
        help=(
            "Offset added to the sender nonce for the authorization nonce - "
            "defaults to the known value for the chain, or 1"
        ),
        nargs="?",
        default=_get_env_or_default("SETCODE_AUTH_NONCE_OFFSET", None),
    )

    parser.add_argument(
        "--function",
        type=delegate_function,
        help="Delegate function to call in the sender context",
        choices=list(DelegateFunction),
        nargs="?",
        default=_get_env_or_default("SETCODE_FUNCTION", None),
    )

    parser.add_argument(
        "--token",
        type=address,
        help="ERC-20 token address for the delegate function",
        nargs="?",
        default=_get_env_or_default("SETCODE_TOKEN", None),
    )

    parser.add_argument(
        "--spender",
        type=address,
        help="Spender address for manageTokens",
        nargs="?",
        default=_get_env_or_default("SETCODE_SPENDER", None),
    )

    parser.add_argument(
        "--recipient",
        type=address,
        help="Recipient address for the delegate function",
        nargs="?",
        default=_get_env_or_default("SETCODE_RECIPIENT", None),
    )

    parser.add_argument(
        "--amount",
        type=unsigned_int,
        help="Token amount for the delegate function - defaults to 0",
        nargs="?",
        const=0,
        default=_get_env_or_default("SETCODE_AMOUNT", 0),
    )

    parser.add_argument(
        "--data",
        type=hex_bytes,
        help="Raw call data, overrides --function",
        nargs="?",
        default=_get_env_or_default("SETCODE_DATA", None),
    )

    parser.add_argument(
        "--broadcast",
        help="Submit the transaction with eth_sendRawTransaction",
        nargs="?",
        type=boolean,
        const=True,
        default=_get_env_or_default("SETCODE_BROADCAST", False),
    )

    parser.add_argument(
        "--verify",
        help=(
            "Wait for the receipt and check the delegation designator "
            "was installed on the sender account, and with --function the "
            "token balance changes of the sender and recipient"
        ),
        nargs="?",
        type=boolean,
        const=True,
        default=_get_env_or_default("SETCODE_VERIFY", False),
    )

    parser.add_argument(
        "--verify_timeout",
        type=unsigned_int,
        help="Seconds to wait for the receipt - defaults to 60",
        nargs="?",
        const=60,
        default=_get_env_or_default("SETCODE_VERIFY_TIMEOUT", 60),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        type=boolean,
        const=True,
        default=_get_env_or_default("SETCODE_VERBOSE", False),
    )

    return parser


def build_call_data(args: Namespace, parser: ArgumentParser) -> bytes:
    if args.data is not None:
        return args.data
    if args.function is None:
        return b""
    if args.token is None or args.recipient is None:
        parser.error(f"--token and --recipient are required for {args.function}")
    if args.function == DelegateFunction.simpleTransfer:
        return encode_simple_transfer_calldata(
            args.token, args.recipient, args.amount
        )
    if args.spender is None:
        parser.error("--spender is required for manageTokens")
    return encode_manage_tokens_calldata(
        args.token, args.spender, args.recipient, args.amount
    )


def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    if not args.private_key and not args.keystore_file_path:
        argument_parser.error(
            "You must specify either --private_key or --keystore_file_path, "
            "or set SETCODE_PRIVATE_KEY or SETCODE_KEYSTORE_FILE_PATH "
            "environment variables."
        )
    if args.private_key and args.keystore_file_path:
        argument_parser.error(
            "You can only specify either --private_key or "
            "--keystore_file_path but not both at the same time"
        )
    if args.delegate_address is None:
        argument_parser.error(
            "You must specify --delegate_address or set "
            "SETCODE_DELEGATE_ADDRESS environment variable."
        )
    if args.verify and not args.broadcast:
        argument_parser.error("--verify requires --broadcast")

    call_data = build_call_data(args, argument_parser)
    return get_init_data(args, call_data)


def get_init_data(args: Namespace, call_data: bytes) -> InitData:
    init_logging(args)

    signer = load_signer(
        args.private_key, args.keystore_file_path, args.keystore_file_password
    )
    params = SetCodeParams(
        delegate_address=Address(args.delegate_address),
        gas_limit=args.gas_limit,
        max_fee_per_gas=args.max_fee_per_gas,
        max_priority_fee_per_gas=args.max_priority_fee_per_gas,
        to=Address(args.to) if args.to is not None else None,
        value=args.value,
        data=call_data,
    )
    token_transfer = None
    if args.function is not None and args.data is None:
        token_transfer = TokenTransfer(
            Address(args.token), Address(args.recipient), args.amount)
    logging.info(
        f"Sender {signer.address} delegating to {args.delegate_address} "
        f"via {args.ethereum_node_url}"
    )
    return InitData(
        args.ethereum_node_url,
        signer,
        params,
        args.chain_id,
        args.auth_nonce_offset,
        args.broadcast,
        args.verify,
        args.verify_timeout,
        token_transfer,
        args.verbose,
    )


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )
