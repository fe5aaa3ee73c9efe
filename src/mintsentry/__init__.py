"""mintsentry - new-mint detection and single-purchase triggering for Solana."""

__version__ = "0.1.0"
