"""Wallet provider backed by a JSON-RPC wallet endpoint.

The wallet endpoint (Frame, a local node with unlocked accounts, ...) holds
the user's keys and signs transactions; this module only forwards requests
to it with web3.py. Account and chain changes are detected by polling and
delivered to listeners registered with :meth:`WalletProvider.on`, mirroring
the ``accountsChanged`` / ``chainChanged`` events of browser wallets.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from utils.web3_config import BLUE_CARBON_TOKEN_ABI

logger = logging.getLogger(__name__)

# EIP-3085 error code for a chain the wallet does not know
UNRECOGNIZED_CHAIN = 4902

ACCOUNTS_CHANGED = 'accountsChanged'
CHAIN_CHANGED = 'chainChanged'


class ProviderRPCError(Exception):
    """A JSON-RPC error returned by the wallet."""

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class WalletProvider:
    """Forwards wallet and chain requests to a JSON-RPC endpoint."""

    def __init__(self, wallet_rpc_url: str, read_rpc_url: str | None = None) -> None:
        self.wallet_rpc_url = wallet_rpc_url
        self.w3 = AsyncWeb3(AsyncHTTPProvider(wallet_rpc_url))
        # Balance reads and receipts may go to a separate public node
        self.read_w3 = AsyncWeb3(AsyncHTTPProvider(read_rpc_url)) if read_rpc_url else self.w3
        self._listeners: dict[str, list[Callable]] = {}

    # ------------------------------------------------------------------
    # Raw requests
    # ------------------------------------------------------------------

    async def request(self, method: str, params: list | None = None) -> Any:
        """Send one JSON-RPC request to the wallet.

        Raises ``ProviderRPCError`` carrying the wallet's error code.
        """
        response = await self.w3.provider.make_request(method, params or [])
        error = response.get('error')
        if error:
            if isinstance(error, dict):
                raise ProviderRPCError(error.get('code'), error.get('message', 'Wallet request failed'))
            raise ProviderRPCError(None, str(error))
        return response.get('result')

    async def request_accounts(self) -> list[str]:
        return list(await self.request('eth_requestAccounts') or [])

    async def accounts(self) -> list[str]:
        return list(await self.request('eth_accounts') or [])

    async def chain_id(self) -> int:
        result = await self.request('eth_chainId')
        return int(result, 16) if isinstance(result, str) else int(result)

    async def switch_chain(self, chain_id_hex: str) -> None:
        await self.request('wallet_switchEthereumChain', [{'chainId': chain_id_hex}])

    async def add_chain(self, chain_params: dict) -> None:
        await self.request('wallet_addEthereumChain', [chain_params])

    # ------------------------------------------------------------------
    # Chain reads and writes
    # ------------------------------------------------------------------

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return await self.read_w3.eth.get_balance(Web3.to_checksum_address(address))

    def _token(self, w3: AsyncWeb3, contract_address: str):
        return w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=BLUE_CARBON_TOKEN_ABI)

    async def token_balance(self, contract_address: str, owner: str) -> int:
        """Token balance in base units."""
        token = self._token(self.read_w3, contract_address)
        return await token.functions.balanceOf(Web3.to_checksum_address(owner)).call()

    async def send_token_transfer(self, contract_address: str, sender: str, to: str, amount: int) -> str:
        """Ask the wallet to sign and send ``transfer(to, amount)``; returns the tx hash."""
        token = self._token(self.w3, contract_address)
        tx_hash = await token.functions.transfer(Web3.to_checksum_address(to), amount).transact(
            {'from': Web3.to_checksum_address(sender)}
        )
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> dict:
        receipt = await self.read_w3.eth.wait_for_transaction_receipt(tx_hash)
        return dict(receipt)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Callable) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for '%s' failed", event)

    async def watch(self, interval: float = 1.0) -> None:
        """Poll the wallet and emit account / chain changes until cancelled.

        The first successful poll sets the baseline; nothing is emitted for it.
        """
        last_accounts = last_chain = None
        polled = False
        while True:
            try:
                accounts = await self.accounts()
                chain = await self.chain_id()
            except Exception as e:
                logger.debug("Wallet poll failed: %s", e)
            else:
                if not polled:
                    last_accounts, last_chain, polled = accounts, chain, True
                else:
                    if accounts != last_accounts:
                        last_accounts = accounts
                        await self.emit(ACCOUNTS_CHANGED, accounts)
                    if chain != last_chain:
                        last_chain = chain
                        await self.emit(CHAIN_CHANGED, hex(chain))
            await asyncio.sleep(interval)
