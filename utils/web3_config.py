"""Sepolia network parameters and BlueCarbonToken contract settings."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation

from web3 import Web3

from config import config
from utils.client_storage import STORAGE_KEYS, ClientStorage

SEPOLIA_CHAIN_ID = 11155111
SEPOLIA_CHAIN_ID_HEX = hex(SEPOLIA_CHAIN_ID)  # '0xaa36a7'

SEPOLIA_CHAIN_CONFIG = {
    'chainId': SEPOLIA_CHAIN_ID_HEX,
    'chainName': 'Sepolia Test Network',
    'nativeCurrency': {'name': 'ETH', 'symbol': 'ETH', 'decimals': 18},
    'rpcUrls': ['https://rpc.sepolia.org', 'https://1rpc.io/sepolia'],
    'blockExplorerUrls': ['https://sepolia.etherscan.io/'],
}

EXPLORER_URL = 'https://sepolia.etherscan.io'

TOKEN_DECIMALS = 18
ONE_BASE_UNIT = Decimal(1).scaleb(-TOKEN_DECIMALS)
# Wide enough for any uint256 amount with 18 decimals
PRECISE = Context(prec=100)

# Placeholder address shipped in sample configs; never a real deployment
PLACEHOLDER_CONTRACT_ADDRESS = '0x1234567890123456789012345678901234567890'


def _fn(name: str, inputs: list, outputs: list, mutability: str) -> dict:
    return {
        'type': 'function',
        'name': name,
        'inputs': [{'name': n, 'type': t} for n, t in inputs],
        'outputs': [{'name': '', 'type': t} for t in outputs],
        'stateMutability': mutability,
    }


def _event(name: str, inputs: list) -> dict:
    return {
        'type': 'event',
        'name': name,
        'anonymous': False,
        'inputs': [{'name': n, 'type': t, 'indexed': i} for n, t, i in inputs],
    }


# Minimal ERC20-like interface of BlueCarbonToken
BLUE_CARBON_TOKEN_ABI = [
    _fn('name', [], ['string'], 'view'),
    _fn('symbol', [], ['string'], 'view'),
    _fn('decimals', [], ['uint8'], 'view'),
    _fn('totalSupply', [], ['uint256'], 'view'),
    _fn('balanceOf', [('owner', 'address')], ['uint256'], 'view'),
    _fn('transfer', [('to', 'address'), ('amount', 'uint256')], ['bool'], 'nonpayable'),
    _fn('mint', [('to', 'address'), ('amount', 'uint256')], ['bool'], 'nonpayable'),
    _event('Transfer', [('from', 'address', True), ('to', 'address', True), ('value', 'uint256', False)]),
    _event('Mint', [('to', 'address', True), ('value', 'uint256', False)]),
]


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Web3Config:
    """Contract address and read RPC endpoint in effect."""

    contract_address: str
    rpc_url: str

    @property
    def has_contract(self) -> bool:
        return bool(self.contract_address) and self.contract_address != PLACEHOLDER_CONTRACT_ADDRESS


def load_web3_config(storage: ClientStorage | None = None) -> Web3Config:
    """Saved override first (when both fields are set), then the environment."""
    if storage is not None:
        saved = storage.get(STORAGE_KEYS['WEB3_CONFIG'])
        if isinstance(saved, dict) and saved.get('contractAddress') and saved.get('rpcUrl'):
            return Web3Config(saved['contractAddress'], saved['rpcUrl'])
    return Web3Config(config.WEB3_CONTRACT_ADDRESS, config.WEB3_RPC_URL)


def save_web3_config(storage: ClientStorage, contract_address: str, rpc_url: str) -> Web3Config:
    """Validate and persist a Web3 config override.

    Raises ``ConfigError`` describing the first invalid field.
    """
    contract_address = (contract_address or '').strip()
    rpc_url = (rpc_url or '').strip()

    if not contract_address or not rpc_url:
        raise ConfigError('Please fill in both fields')
    if not contract_address.startswith('0x') or len(contract_address) != 42:
        raise ConfigError('Invalid contract address format')
    if not rpc_url.startswith('https://'):
        raise ConfigError('RPC URL must start with https://')

    storage.set(STORAGE_KEYS['WEB3_CONFIG'], {'contractAddress': contract_address, 'rpcUrl': rpc_url})
    return Web3Config(contract_address, rpc_url)


def clear_web3_config(storage: ClientStorage) -> None:
    storage.remove(STORAGE_KEYS['WEB3_CONFIG'])


def parse_token_amount(amount: str) -> int:
    """Human-readable token amount -> base units (fixed 18 decimals).

    Raises ``ValueError`` unless the amount is positive and has at most
    18 fractional digits.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if value <= 0:
        raise ValueError('Amount must be a positive number')
    try:
        truncated = value.quantize(ONE_BASE_UNIT, rounding=ROUND_DOWN, context=PRECISE)
    except InvalidOperation as e:
        raise ValueError(f"Amount out of range: {amount!r}") from e
    if truncated != value:
        raise ValueError(f"Amount has more than {TOKEN_DECIMALS} decimal places: {amount!r}")
    return int(value.scaleb(TOKEN_DECIMALS, context=PRECISE))


def format_token_amount(base_units: int) -> str:
    """Base units -> human-readable string, e.g. 1500000000000000000 -> '1.5'."""
    text = format(Decimal(Web3.from_wei(int(base_units), 'ether')), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text or '0'


def format_address(address: str) -> str:
    if not address:
        return ''
    return f"{address[:6]}...{address[-4:]}"


def explorer_tx_url(tx_hash: str) -> str:
    return f"{EXPLORER_URL}/tx/{tx_hash}"
