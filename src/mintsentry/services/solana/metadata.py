"""Metaplex token metadata: PDA derivation and account decoding."""

import struct

from solders.pubkey import Pubkey

from mintsentry.constants.provider import TOKEN_METADATA_PROGRAM_ID
from mintsentry.core.exceptions import DataShapeError
from mintsentry.models.token import TokenMetadata

METADATA_SEED = b"metadata"

# key (u8) + update_authority (32) + mint (32)
_HEADER_SIZE = 1 + 32 + 32


def derive_metadata_address(mint_address: str) -> str:
    """Derive the metadata account (PDA) for a mint.

    Seeds are ``["metadata", program_id, mint]`` under the token metadata program.
    """
    program_id = Pubkey.from_string(TOKEN_METADATA_PROGRAM_ID)
    mint = Pubkey.from_string(mint_address)
    pda, _bump = Pubkey.find_program_address(
        [METADATA_SEED, bytes(program_id), bytes(mint)],
        program_id,
    )
    return str(pda)


def _read_string(data: bytes, offset: int) -> tuple[str, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    offset += 4
    end = offset + length
    if end > len(data):
        raise DataShapeError("Metadata string runs past end of account data")
    value = data[offset:end].decode("utf-8", errors="replace").rstrip("\x00").strip()
    return value, end


def parse_metadata_account(mint_address: str, data: bytes) -> TokenMetadata:
    """Decode name, symbol and uri from raw metadata account data.

    Raises:
        DataShapeError: Data is too short or inconsistent.
    """
    if len(data) < _HEADER_SIZE + 12:
        raise DataShapeError(f"Metadata account too short: {len(data)} bytes")

    try:
        update_authority = str(Pubkey.from_bytes(data[1:33]))
        offset = _HEADER_SIZE
        name, offset = _read_string(data, offset)
        symbol, offset = _read_string(data, offset)
        uri, _ = _read_string(data, offset)
    except struct.error as e:
        raise DataShapeError(f"Malformed metadata account: {e}") from e

    return TokenMetadata(
        mint_address=mint_address,
        update_authority=update_authority,
        name=name,
        symbol=symbol,
        uri=uri,
    )
