"""Solana address validation.

Local format checks only; no network calls. Provider clients call
``require_solana_address`` before scheduling any request so malformed
input fails fast and never consumes rate-limiter budget.
"""

import base58

from mintsentry.core.exceptions import ValidationError

# Solana base58 alphabet (excludes 0, O, I, l to avoid confusion)
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# Solana addresses are typically 32-44 characters
SOLANA_ADDRESS_MIN_LENGTH = 32
SOLANA_ADDRESS_MAX_LENGTH = 44

PUBKEY_BYTES = 32


def is_valid_solana_address(address: str | None) -> bool:
    """Validate Solana address format (base58, decodes to 32 bytes).

    Args:
        address: Potential Solana address to validate.

    Returns:
        True if address has valid format, False otherwise.

    Example:
        >>> is_valid_solana_address("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
        True
        >>> is_valid_solana_address("invalid_0OIl")
        False
    """
    if address is None or not isinstance(address, str):
        return False

    if address != address.strip() or not address:
        return False

    if not (SOLANA_ADDRESS_MIN_LENGTH <= len(address) <= SOLANA_ADDRESS_MAX_LENGTH):
        return False

    if not all(c in BASE58_ALPHABET for c in address):
        return False

    try:
        return len(base58.b58decode(address)) == PUBKEY_BYTES
    except ValueError:
        return False


def require_solana_address(address: str | None, field: str = "address") -> str:
    """Return the address unchanged or raise ValidationError.

    Args:
        address: Address to validate.
        field: Name used in the error message.

    Raises:
        ValidationError: If the address is not a valid Solana public key.
    """
    if not is_valid_solana_address(address):
        raise ValidationError(f"Invalid Solana {field}: {address!r}")
    return address  # type: ignore[return-value]
