"""Raydium liquidity listing client."""

from mintsentry.services.raydium.client import RaydiumClient
from mintsentry.services.raydium.models import RaydiumPool

__all__ = ["RaydiumClient", "RaydiumPool"]
