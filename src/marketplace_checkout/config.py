"""Configuration management for the marketplace checkout client."""

from __future__ import annotations

from common.config import Settings as BaseSettings


class Settings(BaseSettings):
    """Marketplace checkout configuration.

    Inherits the backend URL, payment key and logging settings from
    ``common.config.Settings`` and adds checkout-specific options.
    """

    # Service identity
    service_name: str = "marketplace-checkout"
    service_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8030

    # Backend requests
    api_token: str = "dev-token"
    request_timeout: float = 15.0
    max_retries: int = 2
    confirm_retry_attempts: int = 3

    # Payment
    payment_return_url: str = "http://localhost:4200/profile"

    # Cart-sourced summary surcharges
    shipping_fee: float = 100.0
    tax_fee: float = 10.0

    # Resumable orders
    incomplete_orders_page_size: int = 10

    # Serve the in-memory marketplace backend alongside the API
    mount_mock_backend: bool = True


def get_settings() -> Settings:
    """Return a settings instance."""
    return Settings()
