"""
Wallet session.

Holds the connected account and its cached balance, and translates
provider failures into the error taxonomy.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Optional

from loguru import logger

from ..config.loader import NetworkConfig
from ..core.errors import (
    ConnectionRejected,
    NetworkSwitchFailed,
    ProviderUnavailable,
    TransferRejected,
)
from .provider import UNRECOGNIZED_CHAIN, ProviderRpcError, WalletProvider

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class BalanceReading:
    """Balance in whole native-token units.

    verified is False when the provider failed and the fallback amount
    was substituted; such a balance must not be trusted.
    """
    amount: float
    verified: bool = True


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    success: bool
    block_number: Optional[int] = None


def wei_to_units(amount_wei: int, decimals: int = 18) -> float:
    """Convert minor units to whole units, rounded down to 2 places."""
    units = Decimal(int(amount_wei)) / (Decimal(10) ** decimals)
    return float(units.quantize(TWO_PLACES, rounding=ROUND_DOWN))


def units_to_wei(amount: float, decimals: int = 18) -> int:
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def _receipt_succeeded(status: Any) -> bool:
    if isinstance(status, str):
        return int(status, 16) == 1 if status.startswith("0x") else status == "1"
    return status is True or status == 1


def _int_or_none(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


class WalletSession:
    """Connected wallet state shared by the payment and search flows.

    Only connect/refresh_balance and the payment executor (via debit)
    write the cached balance; everything else reads it.
    """

    def __init__(
        self,
        provider: Optional[WalletProvider],
        network: NetworkConfig,
        fallback_balance: float = 10.0
    ):
        self.provider = provider
        self.network = network
        self.fallback_balance = fallback_balance
        self.connected = False
        self.address: Optional[str] = None
        self.balance = 0.0
        self.balance_verified = False

    def _require_provider(self) -> WalletProvider:
        if self.provider is None:
            raise ProviderUnavailable(
                "No wallet provider found. Install or configure a wallet to continue."
            )
        return self.provider

    async def connect(self) -> str:
        """Request the wallet's account and mark the session connected.

        Returns:
            The selected account address

        Raises:
            ProviderUnavailable: If no wallet provider is present
            ConnectionRejected: If the wallet declines or has no accounts
        """
        provider = self._require_provider()
        try:
            accounts = await provider.request_accounts()
        except ProviderRpcError as e:
            raise ConnectionRejected(f"Wallet connection rejected: {e}", code=e.code) from e
        if not accounts:
            raise ConnectionRejected("Wallet returned no accounts")

        self.address = accounts[0]
        self.connected = True
        logger.info(f"Wallet connected: {self.address}")
        return self.address

    def disconnect(self) -> None:
        """Forget the account and cached balance."""
        self.connected = False
        self.address = None
        self.balance = 0.0
        self.balance_verified = False

    async def ensure_network(self, network: Optional[NetworkConfig] = None) -> None:
        """Switch to the target network, registering it if the wallet lacks it.

        Raises:
            NetworkSwitchFailed: If the switch is rejected for any reason
                other than an unknown network, or if registering fails
        """
        network = network or self.network
        provider = self._require_provider()
        try:
            await provider.switch_chain(network.chain_id)
            return
        except ProviderRpcError as e:
            if e.code != UNRECOGNIZED_CHAIN:
                raise NetworkSwitchFailed(str(e), code=e.code) from e
            logger.info(f"Network {network.chain_id_hex} unknown to wallet, adding it")

        try:
            await provider.add_chain(network)
        except ProviderRpcError as e:
            raise NetworkSwitchFailed(
                f"Could not add network {network.chain_name}: {e}", code=e.code
            ) from e

    async def get_balance(self, address: str) -> BalanceReading:
        """Read the native balance, degrading to the fallback on failure."""
        provider = self._require_provider()
        try:
            raw = await provider.get_balance(address)
            return BalanceReading(wei_to_units(raw, self.network.currency_decimals))
        except Exception as e:
            logger.warning(
                f"Balance check failed for {address}, using unverified "
                f"fallback balance {self.fallback_balance}: {e}"
            )
            return BalanceReading(self.fallback_balance, verified=False)

    async def refresh_balance(self) -> BalanceReading:
        reading = await self.get_balance(self.address)
        self.balance = reading.amount
        self.balance_verified = reading.verified
        return reading

    def debit(self, amount: float) -> float:
        """Decrement the cached balance after a confirmed payment."""
        remaining = Decimal(str(self.balance)) - Decimal(str(amount))
        self.balance = float(max(Decimal(0), remaining).quantize(TWO_PLACES, rounding=ROUND_DOWN))
        return self.balance

    async def send_value_transfer(
        self,
        from_address: str,
        to_address: str,
        amount_wei: int,
        gas_limit: int
    ) -> str:
        """Submit a native value transfer.

        Returns:
            The transaction hash

        Raises:
            TransferRejected: If the wallet declines or submission fails
        """
        provider = self._require_provider()
        tx = {
            'from': from_address,
            'to': to_address,
            'value': amount_wei,
            'gas': gas_limit,
        }
        try:
            return await provider.send_transaction(tx)
        except ProviderRpcError as e:
            raise TransferRejected(f"Transfer rejected: {e}", code=e.code) from e
        except Exception as e:
            raise TransferRejected(f"Transfer failed: {e}") from e

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Receipt for tx_hash, or None while the transaction is unmined."""
        raw: Optional[Dict[str, Any]] = await self._require_provider().get_transaction_receipt(tx_hash)
        if not raw:
            return None
        return Receipt(
            tx_hash=tx_hash,
            success=_receipt_succeeded(raw.get('status')),
            block_number=_int_or_none(raw.get('blockNumber')),
        )
