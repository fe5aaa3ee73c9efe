"""Solana RPC client and Metaplex metadata helpers."""

from mintsentry.services.solana.metadata import derive_metadata_address, parse_metadata_account
from mintsentry.services.solana.rpc_client import SolanaRPCClient

__all__ = ["SolanaRPCClient", "derive_metadata_address", "parse_metadata_account"]
