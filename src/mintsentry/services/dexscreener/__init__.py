"""DexScreener API client."""

from mintsentry.services.dexscreener.client import DexScreenerClient
from mintsentry.services.dexscreener.models import BoostedToken, TokenPair

__all__ = ["BoostedToken", "DexScreenerClient", "TokenPair"]
