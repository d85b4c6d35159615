"""
Configuration Management
========================
Loads storage settings from environment variables (or a .env file) using
Pydantic Settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from event_photo_storage.models import CompressionClass, Tier

GB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    """
    Storage Settings

    Credentials, capacity ceilings, the compression table and backup tuning.
    """

    # ========================================================================
    # CLOUDFLARE R2 (PRIMARY TIER)
    # ========================================================================
    CLOUDFLARE_R2_ACCOUNT_ID: Optional[str] = Field(default=None)
    CLOUDFLARE_R2_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    CLOUDFLARE_R2_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    CLOUDFLARE_R2_BUCKET_NAME: str = Field(default="event-photos")
    CLOUDFLARE_R2_PUBLIC_URL: Optional[str] = Field(default=None)
    CLOUDFLARE_R2_CUSTOM_DOMAIN: Optional[str] = Field(default=None)

    # ========================================================================
    # GOOGLE DRIVE (SECONDARY / ARCHIVAL TIER)
    # ========================================================================
    GOOGLE_DRIVE_CLIENT_ID: Optional[str] = Field(default=None)
    GOOGLE_DRIVE_CLIENT_SECRET: Optional[str] = Field(default=None)
    GOOGLE_DRIVE_REFRESH_TOKEN: Optional[str] = Field(default=None)
    GOOGLE_DRIVE_ROOT_FOLDER_ID: Optional[str] = Field(default=None)

    # ========================================================================
    # LOCAL BACKUP (LAST-RESORT TIER)
    # ========================================================================
    LOCAL_BACKUP_PATH: str = Field(default="./dslr-backup")
    LOCAL_PUBLIC_BASE_URL: Optional[str] = Field(default=None)

    # ========================================================================
    # CAPACITY CEILINGS (GB)
    # ========================================================================
    R2_MAX_SIZE_GB: float = Field(default=8, gt=0)
    GOOGLE_DRIVE_MAX_SIZE_GB: float = Field(default=12, gt=0)
    LOCAL_MAX_SIZE_GB: float = Field(default=50, gt=0)

    # ========================================================================
    # COMPRESSION PROFILES
    # ========================================================================
    COMPRESSION_PREMIUM_QUALITY: int = Field(default=95, ge=1, le=100)
    COMPRESSION_PREMIUM_MAX_DIMENSION: int = Field(default=4000, ge=1)
    COMPRESSION_STANDARD_QUALITY: int = Field(default=85, ge=1, le=100)
    COMPRESSION_STANDARD_MAX_DIMENSION: int = Field(default=2000, ge=1)
    COMPRESSION_THUMBNAIL_QUALITY: int = Field(default=75, ge=1, le=100)
    COMPRESSION_THUMBNAIL_MAX_DIMENSION: int = Field(default=800, ge=1)

    # ========================================================================
    # EVENT BACKUP
    # ========================================================================
    BACKUP_MAX_CONCURRENT_UPLOADS: int = Field(default=3, ge=1, le=50)
    BACKUP_BATCH_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    BACKUP_ROOT_FOLDER_NAME: str = Field(default="EventBackups")
    BACKUP_STATUS_TTL_DAYS: int = Field(default=7, ge=1)
    BACKUP_STATUS_MAX_ENTRIES: int = Field(default=256, ge=1)

    # ========================================================================
    # RETENTION & LOGGING
    # ========================================================================
    RETENTION_DAYS: int = Field(default=30, ge=1)
    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @computed_field
    @property
    def r2_configured(self) -> bool:
        """Check if Cloudflare R2 is fully configured"""
        return all([
            self.CLOUDFLARE_R2_ACCOUNT_ID,
            self.CLOUDFLARE_R2_ACCESS_KEY_ID,
            self.CLOUDFLARE_R2_SECRET_ACCESS_KEY,
            self.CLOUDFLARE_R2_BUCKET_NAME,
        ])

    @computed_field
    @property
    def google_drive_configured(self) -> bool:
        """Check if Google Drive is fully configured"""
        return all([
            self.GOOGLE_DRIVE_CLIENT_ID,
            self.GOOGLE_DRIVE_CLIENT_SECRET,
            self.GOOGLE_DRIVE_REFRESH_TOKEN,
        ])

    def capacity_bytes(self, tier: Tier) -> int:
        """Configured ceiling for a tier, in bytes."""
        ceilings = {
            Tier.PRIMARY: self.R2_MAX_SIZE_GB,
            Tier.SECONDARY: self.GOOGLE_DRIVE_MAX_SIZE_GB,
            Tier.LOCAL: self.LOCAL_MAX_SIZE_GB,
        }
        return int(ceilings[tier] * GB)

    def compression_profiles(self) -> dict[CompressionClass, tuple[int, int]]:
        """(quality, max_dimension) for every compression class."""
        return {
            CompressionClass.PREMIUM: (
                self.COMPRESSION_PREMIUM_QUALITY,
                self.COMPRESSION_PREMIUM_MAX_DIMENSION,
            ),
            CompressionClass.STANDARD: (
                self.COMPRESSION_STANDARD_QUALITY,
                self.COMPRESSION_STANDARD_MAX_DIMENSION,
            ),
            CompressionClass.THUMBNAIL: (
                self.COMPRESSION_THUMBNAIL_QUALITY,
                self.COMPRESSION_THUMBNAIL_MAX_DIMENSION,
            ),
        }

    def safe_summary(self) -> dict[str, object]:
        """Non-secret view of the configuration for status output."""
        return {
            "r2_configured": self.r2_configured,
            "r2_bucket": self.CLOUDFLARE_R2_BUCKET_NAME,
            "google_drive_configured": self.google_drive_configured,
            "local_backup_path": self.LOCAL_BACKUP_PATH,
            "capacity_gb": {
                Tier.PRIMARY.value: self.R2_MAX_SIZE_GB,
                Tier.SECONDARY.value: self.GOOGLE_DRIVE_MAX_SIZE_GB,
                Tier.LOCAL.value: self.LOCAL_MAX_SIZE_GB,
            },
            "backup_max_concurrent_uploads": self.BACKUP_MAX_CONCURRENT_UPLOADS,
            "retention_days": self.RETENTION_DAYS,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
