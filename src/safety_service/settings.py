from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Upstream feeds
    recall_feed_url: str = Field(
        default="https://api.nhtsa.gov/recalls/recallsByVehicle", alias="RECALL_FEED_URL"
    )
    complaint_feed_url: str = Field(
        default="https://api.nhtsa.gov/complaints/complaintsByVehicle", alias="COMPLAINT_FEED_URL"
    )
    vpic_base_url: str = Field(default="https://vpic.nhtsa.dot.gov/api/vehicles", alias="VPIC_BASE_URL")
    feed_timeout_seconds: float = Field(default=10.0, gt=0, alias="FEED_TIMEOUT_SECONDS")
    feed_user_agent: str = Field(default="VehicleSafetyIntel/1.0", alias="FEED_USER_AGENT")

    # Cache
    safety_cache_ttl_seconds: int = Field(default=86_400, gt=0, alias="SAFETY_CACHE_TTL_SECONDS")
    partial_cache_ttl_seconds: int = Field(default=86_400, ge=0, alias="PARTIAL_CACHE_TTL_SECONDS")
    vin_cache_ttl_seconds: int = Field(default=2_592_000, gt=0, alias="VIN_CACHE_TTL_SECONDS")
    cache_max_entries: int = Field(default=10_000, gt=0, alias="CACHE_MAX_ENTRIES")

    # Result shaping
    max_recalls: int = Field(default=50, gt=0, alias="MAX_RECALLS")
    max_complaints: int = Field(default=100, gt=0, alias="MAX_COMPLAINTS")
    severity_rules_file: str = Field(default="", alias="SEVERITY_RULES_FILE")

    # 0 disables the per-request deadline; feed timeouts still bound the wait.
    request_timeout_seconds: float = Field(default=0.0, ge=0, alias="REQUEST_TIMEOUT_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")
