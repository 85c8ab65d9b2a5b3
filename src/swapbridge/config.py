"""Application configuration using pydantic-settings.

One process runs the relayer (monitor, sequencer, prover glue) against two
ledgers, each backed by its own database.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level for the relayer")

    # ======================
    # Ledgers
    # ======================
    l1_database_url: str = Field(
        default="sqlite+aiosqlite:///./data/l1.db",
        description="L1 ledger database connection URL",
    )
    l2_database_url: str = Field(
        default="sqlite+aiosqlite:///./data/l2.db",
        description="L2 ledger database connection URL",
    )
    l1_ledger_address: str = Field(
        default="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        description="Address identifying the L1 ledger",
    )
    l2_ledger_address: str = Field(
        default="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
        description="Address identifying the L2 ledger (EIP-712 verifying contract)",
    )
    chain_id: int = Field(default=31337, description="Chain id bound into preconfirmation signatures")
    enforce_relay_caller: bool = Field(
        default=True,
        description="Only the sequencer or the L1 ledger may complete L1 messages on L2",
    )

    # ======================
    # Preconfirmation domain
    # ======================
    domain_name: str = Field(default="L2Bridge", description="EIP-712 domain name")
    domain_version: str = Field(default="1", description="EIP-712 domain version")

    # ======================
    # Keys
    # ======================
    sequencer_private_key: Optional[str] = Field(
        default=None, description="Sequencer key (hex, optionally Fernet encrypted)"
    )
    attester_private_key: Optional[str] = Field(
        default=None, description="Withdrawal attester key (hex, optionally Fernet encrypted)"
    )
    master_key: Optional[str] = Field(
        default=None, description="Master encryption key for keys at rest (Fernet key)"
    )

    # ======================
    # Proofs
    # ======================
    proof_verifier: str = Field(
        default="accept_all", description="Withdrawal proof verifier: accept_all or attestation"
    )
    attester_address: Optional[str] = Field(
        default=None, description="Address whose attestations the L1 ledger accepts"
    )

    # ======================
    # Relayer cadence
    # ======================
    tick_interval: float = Field(default=1.0, description="Seconds between sequencer blocks")
    monitor_interval: float = Field(default=0.5, description="Seconds between L1 event polls")
    fill_watch_interval: float = Field(default=0.5, description="Seconds between L2 fill polls")
    prover_interval: float = Field(default=5.0, description="Seconds between withdrawal proofs")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_signing_domain(self) -> "SigningDomain":
        """Preconfirmation domain bound to the configured L2 ledger."""
        from swapbridge.signing.typed_data import SigningDomain

        return SigningDomain(
            name=self.domain_name,
            version=self.domain_version,
            chain_id=self.chain_id,
            verifying_contract=self.l2_ledger_address,
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "log_level": self.log_level,
            "l1_database_url": self._redact_url(self.l1_database_url),
            "l2_database_url": self._redact_url(self.l2_database_url),
            "l1_ledger_address": self.l1_ledger_address,
            "l2_ledger_address": self.l2_ledger_address,
            "chain_id": self.chain_id,
            "domain": {"name": self.domain_name, "version": self.domain_version},
            "sequencer_private_key": "***" if self.sequencer_private_key else "(not set)",
            "attester_private_key": "***" if self.attester_private_key else "(not set)",
            "proof_verifier": self.proof_verifier,
            "relayer": {
                "tick_interval": self.tick_interval,
                "monitor_interval": self.monitor_interval,
                "fill_watch_interval": self.fill_watch_interval,
                "prover_interval": self.prover_interval,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
