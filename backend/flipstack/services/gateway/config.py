from pydantic import BaseModel, Field


class GatewayConfig(BaseModel):
    """Configuration for the randomness gateway and Crossbar client."""

    crossbar_url: str = "https://crossbar.switchboard.xyz"
    resolve_path: str = "/randomness/evm"
    chain_id: int = 10143
    paper_mode: bool = True
    min_settlement_delay_seconds: int = 1
    paper_oracle_count: int = 1
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 5
    max_retries: int = Field(default=3, ge=1)

    @property
    def resolve_url(self) -> str:
        """Full Crossbar resolve endpoint."""
        return f"{self.crossbar_url.rstrip('/')}/{self.resolve_path.lstrip('/')}"
