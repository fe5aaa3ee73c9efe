"""Token data service."""

from mintsentry.services.token.data_service import TokenDataService, compute_concentration
from mintsentry.services.token.snapshot import TokenSnapshot

__all__ = [
    "TokenDataService",
    "TokenSnapshot",
    "compute_concentration",
]
