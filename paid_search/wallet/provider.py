"""
Wallet provider capability.

The session talks to a wallet only through this interface; a local
signing account over JSON-RPC is provided for command-line use.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from eth_account import Account
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from ..config.loader import NetworkConfig

# EIP-1193 / EIP-3085 provider error codes
USER_REJECTED = 4001
UNRECOGNIZED_CHAIN = 4902
INTERNAL_ERROR = -32603


class ProviderRpcError(Exception):
    """Error reported by a wallet provider, carrying its numeric code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code


class WalletProvider(ABC):
    """Capabilities the wallet session needs from a wallet."""

    @abstractmethod
    async def request_accounts(self) -> List[str]:
        """Ask the wallet for its accounts, selected account first."""

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        """Select the given chain; UNRECOGNIZED_CHAIN if it is unknown."""

    @abstractmethod
    async def add_chain(self, network: NetworkConfig) -> None:
        """Register network parameters with the wallet and select them."""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance of address in minor units (wei)."""

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Submit a transaction; returns its 0x-prefixed hash."""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt mapping for tx_hash, or None if not yet mined."""


class Web3WalletProvider(WalletProvider):
    """Local signing account over a JSON-RPC node.

    Transactions are signed with the account's private key and submitted
    raw, so the node never needs to hold keys.
    """

    def __init__(self, private_key: str, rpc_url: str, request_timeout: int = 30):
        """Initialize the provider.

        Args:
            private_key: Hex private key of the paying account
            rpc_url: JSON-RPC endpoint to start on
            request_timeout: Per-request HTTP timeout in seconds

        Raises:
            ValueError: If private_key or rpc_url is missing
        """
        if not private_key:
            raise ValueError("private_key is required")
        if not rpc_url:
            raise ValueError("rpc_url is required")

        self.account = Account.from_key(private_key)
        self.request_timeout = request_timeout
        self._known_networks: Dict[int, str] = {}
        self._connect(rpc_url)

    def _connect(self, rpc_url: str) -> None:
        self.rpc_url = rpc_url
        self.web3 = AsyncWeb3(AsyncHTTPProvider(
            rpc_url, request_kwargs={'timeout': self.request_timeout}
        ))

    async def request_accounts(self) -> List[str]:
        return [self.account.address]

    async def switch_chain(self, chain_id: int) -> None:
        current = await self.web3.eth.chain_id
        if current == chain_id:
            return
        known_rpc = self._known_networks.get(chain_id)
        if known_rpc is None:
            raise ProviderRpcError(
                UNRECOGNIZED_CHAIN,
                f"Unrecognized chain ID {hex(chain_id)}. Try adding the chain first."
            )
        self._connect(known_rpc)

    async def add_chain(self, network: NetworkConfig) -> None:
        previous = self.rpc_url
        self._connect(network.rpc_url)
        try:
            served = await self.web3.eth.chain_id
        except Exception as e:
            self._connect(previous)
            raise ProviderRpcError(
                INTERNAL_ERROR, f"Could not reach {network.rpc_url}: {e}"
            ) from e
        if served != network.chain_id:
            self._connect(previous)
            raise ProviderRpcError(
                INTERNAL_ERROR,
                f"RPC {network.rpc_url} serves chain {served}, expected {network.chain_id}"
            )
        self._known_networks[network.chain_id] = network.rpc_url
        logger.info(f"Added network {network.chain_name} ({network.chain_id_hex})")

    async def get_balance(self, address: str) -> int:
        return await self.web3.eth.get_balance(Web3.to_checksum_address(address))

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        sender = Web3.to_checksum_address(tx['from'])
        if sender != self.account.address:
            raise ProviderRpcError(
                USER_REJECTED, f"Account {sender} is not managed by this wallet"
            )

        tx_params = {
            'chainId': await self.web3.eth.chain_id,
            'nonce': await self.web3.eth.get_transaction_count(sender),
            'to': Web3.to_checksum_address(tx['to']),
            'value': int(tx['value']),
            'gas': int(tx['gas']),
            'gasPrice': await self.web3.eth.gas_price,
        }
        signed = self.account.sign_transaction(tx_params)
        tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt)
