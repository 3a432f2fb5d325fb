"""Pydantic models for Helius Enhanced Transaction API responses."""

from pydantic import BaseModel, ConfigDict, Field


class HeliusTokenTransfer(BaseModel):
    """Token transfer within a transaction."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mint: str = ""
    from_user_account: str | None = Field(default=None, alias="fromUserAccount")
    to_user_account: str | None = Field(default=None, alias="toUserAccount")
    token_amount: float = Field(default=0, alias="tokenAmount")
    token_standard: str = Field(default="", alias="tokenStandard")


class HeliusTransaction(BaseModel):
    """Enhanced parsed transaction from Helius."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    signature: str
    timestamp: int = 0  # unix
    type: str = ""  # "TOKEN_MINT", "TRANSFER", ...
    slot: int = 0
    fee_payer: str = Field(default="", alias="feePayer")
    token_transfers: list[HeliusTokenTransfer] = Field(default_factory=list, alias="tokenTransfers")

    @property
    def minted_address(self) -> str | None:
        """Mint of the first token transfer, the token this tx created."""
        if not self.token_transfers:
            return None
        return self.token_transfers[0].mint or None
