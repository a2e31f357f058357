CHAIN_ID_ETHEREUM = 1
CHAIN_ID_OPTIMISM = 10
CHAIN_ID_BASE = 8453
CHAIN_ID_ARBITRUM = 42161

CHAIN_CODE_TO_ID = {
    "ethereum": CHAIN_ID_ETHEREUM,
    "mainnet": CHAIN_ID_ETHEREUM,
    "optimism": CHAIN_ID_OPTIMISM,
    "base": CHAIN_ID_BASE,
    "arbitrum": CHAIN_ID_ARBITRUM,
    "arbitrum-one": CHAIN_ID_ARBITRUM,
}

# L1 the position is opened on, and the L2 staked assets are relocated to.
DEFAULT_ORIGIN_CHAIN_ID = CHAIN_ID_ETHEREUM
DEFAULT_DESTINATION_CHAIN_ID = CHAIN_ID_OPTIMISM


def resolve_chain_id(value: int | str) -> int:
    if isinstance(value, int):
        return value
    s = str(value).strip().lower()
    if s.isdigit():
        return int(s)
    if s not in CHAIN_CODE_TO_ID:
        raise ValueError(f"Unknown chain: {value}")
    return CHAIN_CODE_TO_ID[s]
