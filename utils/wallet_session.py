"""Wallet session manager: connection state, balances and token transfers.

All chain access goes through an injected provider (see
``utils.wallet_provider.WalletProvider``). The manager owns one session
snapshot that listeners can subscribe to.

Every asynchronous operation records the session generation it was issued
under. Connecting, disconnecting or switching accounts starts a new
generation, and results that arrive for an older one are dropped instead of
overwriting the current session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Callable

from web3 import Web3

from utils.client_storage import STORAGE_KEYS, ClientStorage
from utils.ledger import Transaction, TransactionLedger, TxStatus, TxType
from utils.wallet_provider import (
    ACCOUNTS_CHANGED, CHAIN_CHANGED, UNRECOGNIZED_CHAIN, ProviderRPCError, WalletProvider
)
from utils.web3_config import (
    SEPOLIA_CHAIN_CONFIG, SEPOLIA_CHAIN_ID, Web3Config, format_token_amount, load_web3_config,
    parse_token_amount
)

logger = logging.getLogger(__name__)

BALANCE_REFRESH_DELAY = 0.5
CHAIN_CHANGE_REFRESH_DELAY = 1.0
WALLET_POLL_INTERVAL = 1.0


class WalletError(Exception):
    pass


class ProviderUnavailableError(WalletError):
    pass


class WalletNotConnectedError(WalletError):
    pass


class WrongNetworkError(WalletError):
    pass


class TransferError(WalletError):
    pass


class TransferValidationError(WalletError):
    pass


@dataclass(frozen=True)
class WalletSession:
    address: str | None = None
    is_connected: bool = False
    is_correct_network: bool = False
    eth_balance: str = '0'
    token_balance: str = '0'
    is_loading: bool = False
    error: str | None = None


def _same_address(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def validate_transfer(recipient: str, amount: str, token_balance: str) -> None:
    """Check a transfer form before submitting it.

    Raises ``TransferValidationError`` with a user-facing message.
    """
    if not recipient:
        raise TransferValidationError('Recipient address is required')
    if not Web3.is_address(recipient):
        raise TransferValidationError('Invalid recipient address')
    if not amount:
        raise TransferValidationError('Amount is required')
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise TransferValidationError('Amount must be a positive number')
    if not value.is_finite() or value <= 0:
        raise TransferValidationError('Amount must be a positive number')
    if value > Decimal(token_balance or '0'):
        raise TransferValidationError('Insufficient token balance')


class WalletSessionManager:
    """Mediates between the UI and the wallet provider for one account."""

    def __init__(
        self,
        provider: WalletProvider | None,
        storage: ClientStorage,
        ledger: TransactionLedger | None = None,
        web3_config: Web3Config | None = None,
        expected_chain_id: int = SEPOLIA_CHAIN_ID,
        refresh_delay: float = BALANCE_REFRESH_DELAY,
        chain_change_delay: float = CHAIN_CHANGE_REFRESH_DELAY,
        watch_interval: float = WALLET_POLL_INTERVAL,
    ) -> None:
        self.provider = provider
        self.storage = storage
        self.ledger = ledger if ledger is not None else TransactionLedger(storage)
        self.web3_config = web3_config or load_web3_config(storage)
        self.expected_chain_id = expected_chain_id
        self.refresh_delay = refresh_delay
        self.chain_change_delay = chain_change_delay
        self.watch_interval = watch_interval

        self.session = WalletSession()
        self.generation = 0
        self._transfer_in_flight = False
        self._listeners: list[Callable[[WalletSession], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._watch_task: asyncio.Task | None = None

        if self.provider is not None:
            self.provider.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
            self.provider.on(CHAIN_CHANGED, self._on_chain_changed)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[WalletSession], None]) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes) -> None:
        self.session = replace(self.session, **changes)
        for listener in list(self._listeners):
            try:
                listener(self.session)
            except Exception:
                logger.exception("Wallet session listener failed")

    def _is_current(self, generation: int, address: str | None) -> bool:
        return generation == self.generation and _same_address(self.session.address, address)

    def _schedule_refresh(self, address: str, generation: int, delay: float) -> None:
        async def run() -> None:
            await asyncio.sleep(delay)
            await self.refresh_balances(address, generation)

        task = asyncio.get_running_loop().create_task(run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _start_watching(self) -> None:
        """Poll the provider for account and chain changes while it is present."""
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.get_running_loop().create_task(
                self.provider.watch(self.watch_interval)
            )

    async def wait_idle(self) -> None:
        """Wait for scheduled balance refreshes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop listening to and polling the provider; cancel scheduled refreshes."""
        if self.provider is not None:
            self.provider.remove_listener(ACCOUNTS_CHANGED, self._on_accounts_changed)
            self.provider.remove_listener(CHAIN_CHANGED, self._on_chain_changed)
        if self._watch_task is not None:
            self._watch_task.cancel()
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _require_provider(self) -> WalletProvider:
        if self.provider is None:
            message = 'No wallet provider available. Configure WALLET_RPC_URL to continue.'
            self._update(error=message)
            raise ProviderUnavailableError(message)
        return self.provider

    async def connect(self) -> bool:
        """Request account access and start a new session.

        Returns ``False`` (with ``session.error`` set) if the wallet refuses
        or a newer connect superseded this one.
        """
        provider = self._require_provider()
        self._start_watching()
        self.generation += 1
        generation = self.generation
        self._update(is_loading=True, error=None)

        try:
            accounts = await provider.request_accounts()
            if not accounts:
                raise WalletError('No accounts found')
            address = accounts[0]
        except Exception as e:
            logger.error("Failed to connect wallet: %s", e)
            if generation == self.generation:
                self._update(is_loading=False, error=str(e) or 'Failed to connect wallet')
            return False

        try:
            is_correct = await self._read_network()
        except Exception as e:
            logger.error("Error checking network: %s", e)
            is_correct = False

        if generation != self.generation:
            logger.debug("Connect for %s superseded, discarding", address)
            return False

        self._update(
            address=address,
            is_connected=True,
            is_correct_network=is_correct,
            is_loading=False,
            error=None,
        )
        self.storage.set(STORAGE_KEYS['WALLET_ADDRESS'], address)
        logger.info("Wallet connected: %s", address)

        self._schedule_refresh(address, generation, self.refresh_delay)
        return True

    async def auto_connect(self) -> bool:
        """Reconnect if an address was saved by a previous session."""
        if self.provider is None or not self.storage.get(STORAGE_KEYS['WALLET_ADDRESS']):
            return False
        return await self.connect()

    def disconnect(self) -> None:
        """Forget the session locally. The wallet keeps its authorization."""
        self.generation += 1
        self._update(**vars(WalletSession()))
        self.storage.remove(STORAGE_KEYS['WALLET_ADDRESS'])
        logger.info("Wallet disconnected")

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    async def _read_network(self) -> bool:
        chain_id = await self._require_provider().chain_id()
        return chain_id == self.expected_chain_id

    async def check_network(self) -> bool:
        """Refresh ``is_correct_network``. Never blocks other operations."""
        try:
            is_correct = await self._read_network()
        except Exception as e:
            logger.error("Error checking network: %s", e)
            return False
        self._update(is_correct_network=is_correct)
        return is_correct

    async def switch_network(self) -> bool:
        """Ask the wallet to switch to the expected chain, adding it if unknown."""
        provider = self._require_provider()
        chain_id_hex = hex(self.expected_chain_id)
        self._update(is_loading=True)

        try:
            try:
                await provider.switch_chain(chain_id_hex)
            except ProviderRPCError as e:
                if e.code != UNRECOGNIZED_CHAIN:
                    raise
                chain_params = dict(SEPOLIA_CHAIN_CONFIG, chainId=chain_id_hex)
                await provider.add_chain(chain_params)
                await provider.switch_chain(chain_id_hex)
        except Exception as e:
            logger.error("Failed to switch network: %s", e)
            self._update(is_loading=False)
            return False

        generation = self.generation
        await self.check_network()
        address = self.session.address
        if address:
            await self.refresh_balances(address, generation)
        self._update(is_loading=False)
        return True

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def refresh_balances(self, address: str, generation: int | None = None) -> None:
        """Fetch native and token balances for ``address``.

        A failing token read (contract not deployed) falls back to zero.
        A failing native read is reported through ``session.error``.
        Results for a superseded generation or address are dropped.
        """
        provider = self._require_provider()
        if generation is None:
            generation = self.generation

        try:
            eth_wei = await provider.get_balance(address)
        except Exception as e:
            logger.error("Error getting balances for %s: %s", address, e)
            if self._is_current(generation, address):
                self._update(error=f"Failed to fetch balances: {e}")
            return

        token_balance = '0'
        if self.web3_config.has_contract:
            try:
                units = await provider.token_balance(self.web3_config.contract_address, address)
                token_balance = format_token_amount(units)
            except Exception as e:
                logger.debug("Contract not deployed or not accessible: %s", e)

        if not self._is_current(generation, address):
            logger.debug("Discarding stale balances for %s", address)
            return

        self._update(
            eth_balance=format_token_amount(eth_wei),
            token_balance=token_balance,
            error=None,
        )

    async def refresh(self) -> None:
        """Manual refresh for the connected account."""
        if self.session.address and self.session.is_connected:
            await self.refresh_balances(self.session.address)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def transfer_tokens(self, to: str, amount: str) -> dict:
        """Send ``amount`` tokens to ``to`` and wait for the receipt.

        Returns ``{'success': True, 'hash': ..., 'status': ...}``.

        Raises:
            WalletNotConnectedError / WrongNetworkError: before anything is sent.
            TransferError: submission or confirmation failed.
        """
        session = self.session
        if not session.address or not session.is_connected:
            raise WalletNotConnectedError('Wallet not connected')
        if not session.is_correct_network:
            raise WrongNetworkError('Please switch to Sepolia network')
        if self._transfer_in_flight:
            raise TransferError('A transfer is already being submitted')

        provider = self._require_provider()
        sender = session.address
        generation = self.generation

        self._transfer_in_flight = True
        try:
            if not self.web3_config.has_contract:
                raise TransferError(
                    'Contract address not configured. Please set up your Web3 configuration.'
                )
            amount_units = parse_token_amount(amount)
            tx_hash = await provider.send_token_transfer(
                self.web3_config.contract_address, sender, to, amount_units
            )
        except Exception as e:
            logger.error("Transfer failed: %s", e)
            raise TransferError(str(e) or 'Transfer failed') from e
        finally:
            self._transfer_in_flight = False

        self.ledger.append(Transaction(
            hash=tx_hash,
            status=TxStatus.PENDING,
            type=TxType.TRANSFER,
            amount=str(amount),
            to=to,
            sender=sender,
        ))
        logger.info("Transfer %s submitted: %s tokens to %s", tx_hash, amount, to)

        try:
            receipt = await provider.wait_for_receipt(tx_hash)
        except Exception as e:
            logger.error("Waiting for %s failed: %s", tx_hash, e)
            raise TransferError(str(e) or 'Transfer failed') from e

        if receipt.get('status') == 1:
            status = TxStatus.CONFIRMED
            self.ledger.update_status(tx_hash, status)
            if self._is_current(generation, sender):
                await self.refresh_balances(sender, generation)
        else:
            status = TxStatus.FAILED
            self.ledger.update_status(tx_hash, status)

        logger.info("Transfer %s %s", tx_hash, status.value)
        return {'success': True, 'hash': tx_hash, 'status': status.value}

    # ------------------------------------------------------------------
    # Provider events
    # ------------------------------------------------------------------

    async def _on_accounts_changed(self, accounts: list[str]) -> None:
        if not accounts:
            self.disconnect()
            return
        if not self.session.is_connected:
            return

        new_address = accounts[0]
        if _same_address(new_address, self.session.address):
            return

        self.generation += 1
        self._update(address=new_address, eth_balance='0', token_balance='0')
        self.storage.set(STORAGE_KEYS['WALLET_ADDRESS'], new_address)
        logger.info("Wallet account changed to %s", new_address)
        self._schedule_refresh(new_address, self.generation, self.refresh_delay)

    async def _on_chain_changed(self, chain_id: str) -> None:
        logger.info("Wallet chain changed to %s", chain_id)
        await self.check_network()
        if self.session.address:
            self._schedule_refresh(self.session.address, self.generation, self.chain_change_delay)


def create_wallet_session_manager(storage: ClientStorage | None = None) -> WalletSessionManager:
    """Build a manager wired to the configured wallet endpoint and client storage."""
    from config import config
    from utils.client_storage import open_client_storage

    storage = storage if storage is not None else open_client_storage()
    web3_config = load_web3_config(storage)
    provider = None
    if config.WALLET_RPC_URL:
        provider = WalletProvider(config.WALLET_RPC_URL, read_rpc_url=web3_config.rpc_url)
    else:
        logger.warning("WALLET_RPC_URL is not set; wallet features are unavailable")
    return WalletSessionManager(
        provider, storage, web3_config=web3_config, watch_interval=config.WALLET_POLL_INTERVAL
    )
