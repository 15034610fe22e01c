"""Centralized configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Base settings shared across all marketplace client packages."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Backend
    api_url: str = "http://localhost:8080/api/v1/"

    # Payments
    stripe_publishable_key: str = ""

    # Application
    log_level: str = "INFO"
    environment: str = "development"
