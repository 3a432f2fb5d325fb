"""Discovered mints and the fetch-run history.

All timestamps are unix seconds, matching what the discovery feed reports.
"""

from enum import StrEnum

from sqlalchemy import BigInteger, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class MintStatus(StrEnum):
    PENDING = "pending"
    QUALIFIED = "qualified"
    BELOW_THRESHOLD = "below_threshold"
    NO_POOL = "no_pool"


class FetchStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TokenProgram(StrEnum):
    """Issuing programs tracked for new mints."""

    SPL = "spl"
    TOKEN_2022 = "token2022"


class Mint(Base):
    __tablename__ = "mints"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    tx_signature: Mapped[str] = mapped_column(String(128))
    minted_at: Mapped[int] = mapped_column(BigInteger)
    discovered_at: Mapped[int] = mapped_column(BigInteger)
    token_program: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(20), default=MintStatus.PENDING.value)

    # DexScreener enrichment (best pair by liquidity)
    token_name: Mapped[str | None] = mapped_column(String(255))
    token_symbol: Mapped[str | None] = mapped_column(String(50))
    price_usd: Mapped[float | None] = mapped_column(Float)
    liquidity_usd: Mapped[float | None] = mapped_column(Float)
    market_cap_usd: Mapped[float | None] = mapped_column(Float)
    fdv_usd: Mapped[float | None] = mapped_column(Float)
    dex_url: Mapped[str | None] = mapped_column(String(500))
    pair_address: Mapped[str | None] = mapped_column(String(64))
    enriched_at: Mapped[int | None] = mapped_column(BigInteger)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_mints_status", "status"),
        Index("idx_mints_minted_at", "minted_at"),
        Index("idx_mints_enriched_at", "enriched_at"),
    )


class FetchLog(Base):
    """One row per pipeline run."""

    __tablename__ = "fetch_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[int] = mapped_column(BigInteger)
    completed_at: Mapped[int | None] = mapped_column(BigInteger)
    window_start: Mapped[int] = mapped_column(BigInteger)
    window_end: Mapped[int] = mapped_column(BigInteger)
    mints_discovered: Mapped[int] = mapped_column(Integer, default=0)
    mints_qualified: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=FetchStatus.RUNNING.value)
    error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_fetch_log_status_window", "status", "window_end"),
    )
