# Offset added to the sender's pending nonce to get the authorization nonce
# when the sender signs its own authorization. Observed per network, not
# derived from a rule; unknown chains fall back to DEFAULT_NONCE_OFFSET.
DEFAULT_NONCE_OFFSET = 1

NONCE_OFFSET_BY_CHAIN_ID = {
    84532: 1,  # base sepolia
    42793: 0,  # etherlink
    128123: 0,  # etherlink testnet
}


def get_nonce_offset(chain_id: int, override: int | None = None) -> int:
    if override is not None:
        return override
    return NONCE_OFFSET_BY_CHAIN_ID.get(chain_id, DEFAULT_NONCE_OFFSET)
