"""Runtime configuration for the checkout core.

Built once from the environment and handed to ``CheckoutServices``; nothing
below this module reads ``os.environ`` directly.
"""

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    process_alias: str = "default-purchase/release-1"
    max_quantity: int = 100
    payment_window_minutes: int = 15
    clock_skew_seconds: int = 60
    provider_commission_percent: int = 0
    base_url: str = "http://localhost:3000"
    gateway_ready_timeout_seconds: int = 10

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or os.getenv("ENVIRONMENT") or "development").lower(),
            process_alias=os.getenv("CHECKOUT_PROCESS_ALIAS", cls.process_alias),
            max_quantity=_int_env("CHECKOUT_MAX_QUANTITY", cls.max_quantity),
            payment_window_minutes=_int_env("CHECKOUT_PAYMENT_WINDOW_MINUTES", cls.payment_window_minutes),
            clock_skew_seconds=_int_env("CHECKOUT_CLOCK_SKEW_SECONDS", cls.clock_skew_seconds),
            provider_commission_percent=_int_env(
                "CHECKOUT_PROVIDER_COMMISSION_PERCENT", cls.provider_commission_percent
            ),
            base_url=os.getenv("CHECKOUT_BASE_URL", cls.base_url).rstrip("/"),
            gateway_ready_timeout_seconds=_int_env(
                "CHECKOUT_GATEWAY_READY_TIMEOUT_SECONDS", cls.gateway_ready_timeout_seconds
            ),
        )
