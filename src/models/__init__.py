from src.models.base import Base
from src.models.mint import FetchLog, FetchStatus, Mint, MintStatus, TokenProgram

__all__ = [
    "Base",
    "Mint",
    "MintStatus",
    "TokenProgram",
    "FetchLog",
    "FetchStatus",
]
