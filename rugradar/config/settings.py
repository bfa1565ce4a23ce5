# rugradar/config/settings.py

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"


def _split_csv(value: str | None) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings(BaseSettings):
    # --- RPC ---
    solana_rpc_url: Optional[str] = None
    solana_rpc_fallback_urls: Optional[str] = None
    rpc_timeout_sec: float = Field(default=12.0)
    rpc_retry_attempts: int = Field(default=3)
    rpc_backoff_base_sec: float = Field(default=0.25)
    rpc_backoff_jitter_sec: float = Field(default=0.12)

    # --- Caches ---
    onchain_cache_ttl_sec: float = Field(default=60.0)
    onchain_failure_ttl_sec: float = Field(default=10.0)
    market_cache_ttl_sec: float = Field(default=30.0)
    cache_max_entries: int = Field(default=512)

    # --- Holder analysis ---
    holder_limit_default: int = Field(default=12)
    wallet_labels: Optional[str] = None

    # --- Market data ---
    dexscreener_base: str = Field(default="https://api.dexscreener.com")
    market_timeout_sec: float = Field(default=10.0)

    # --- Execution ---
    execution_enabled: bool = Field(default=False)
    jupiter_ultra_base: str = Field(default="https://api.jup.ag/ultra/v1")
    jupiter_api_key: Optional[str] = None
    trader_private_key: Optional[str] = None
    trader_private_key_json: Optional[str] = None

    # --- Storage / logging ---
    data_dir: str = Field(default="./data", alias="RUGRADAR_DATA_DIR")
    log_level: str = Field(default="INFO")

    model_config = {"populate_by_name": True}

    # --- Helpers ---
    def rpc_urls(self) -> List[str]:
        """Primary, configured fallbacks, then the public endpoint; de-duplicated in order."""
        urls: List[str] = []
        for url in [self.solana_rpc_url or "", *_split_csv(self.solana_rpc_fallback_urls), PUBLIC_RPC_URL]:
            url = url.strip()
            if url and url not in urls:
                urls.append(url)
        return urls

    def wallet_label_map(self) -> Dict[str, str]:
        labels: Dict[str, str] = {}
        for item in _split_csv(self.wallet_labels):
            address, _, label = item.partition(":")
            if address.strip() and label.strip():
                labels[address.strip()] = label.strip()
        return labels

    def signer_configured(self) -> bool:
        return bool((self.trader_private_key or "").strip() or (self.trader_private_key_json or "").strip())

    # --- Validators ---
    @model_validator(mode="after")
    def clamp_tuning(self):
        """Keep retry and cache tuning inside workable bounds."""
        self.rpc_retry_attempts = max(1, int(self.rpc_retry_attempts))
        self.onchain_cache_ttl_sec = max(5.0, float(self.onchain_cache_ttl_sec))
        self.holder_limit_default = min(50, max(8, int(self.holder_limit_default)))
        return self


# Global settings instance
settings = Settings()
