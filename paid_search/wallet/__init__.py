"""
Wallet access for Paid Search.

Provides the provider capability interface and the connected session.
"""

from .provider import ProviderRpcError, Web3WalletProvider, WalletProvider
from .session import BalanceReading, Receipt, WalletSession

__all__ = [
    "ProviderRpcError",
    "Web3WalletProvider",
    "WalletProvider",
    "BalanceReading",
    "Receipt",
    "WalletSession",
]
