import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")

UA_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)


class MediaConfig(BaseModel):
    public_dir: str = Field(default="public/media", description="Directory served as /media")
    scratch_dir: str = Field(default="tmp/scratch", description="Private staging area for tool output")
    url_prefix: str = Field(default="/media", description="Public URL prefix for finished files")


class ToolsConfig(BaseModel):
    ytdlp_path: Optional[str] = Field(default=None, description="yt-dlp executable (PATH lookup if unset)")
    ffmpeg_path: Optional[str] = Field(default=None, description="ffmpeg executable (PATH lookup if unset)")
    probe_timeout: float = Field(default=5.0, gt=0, description="Version check timeout in seconds")
    info_timeout: float = Field(default=30.0, gt=0, description="Metadata probe timeout in seconds")
    download_timeout: float = Field(default=120.0, gt=0, description="Full download timeout in seconds")
    image_timeout: float = Field(default=60.0, gt=0, description="Image extraction timeout in seconds")
    info_max_output: int = Field(default=10 * 1024 * 1024, ge=1024, description="Output cap for metadata probe")
    download_max_output: int = Field(default=100 * 1024 * 1024, ge=1024, description="Output cap for downloads")
    image_max_output: int = Field(default=50 * 1024 * 1024, ge=1024, description="Output cap for image extraction")
    max_height: int = Field(default=1080, ge=144, le=4320, description="Video height ceiling")
    merge_output_format: str = Field(default="mp4", description="Container used when merging streams")


class DirectFetchConfig(BaseModel):
    user_agent: str = Field(default=UA_CHROME, description="User-Agent sent on direct fetches")
    timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")
    max_bytes: int = Field(default=512 * 1024 * 1024, ge=1, description="Largest body accepted in memory")


class RedisConfig(BaseModel):
    url: Optional[str] = Field(default=None, description="Redis connection URL (limits disabled if unset)")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=5, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class AcquisitionConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent acquisitions")
    slot_ttl: int = Field(default=600, ge=60, description="Seconds before an orphaned slot expires")


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Enable SSRF protection")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class ApiConfig(BaseModel):
    title: str = Field(default="Media Fetcher API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(env_prefix="MEDIA_FETCHER_", env_nested_delimiter="__")

    media: MediaConfig = Field(default_factory=MediaConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    direct: DirectFetchConfig = Field(default_factory=DirectFetchConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = CONFIG_PATH) -> "Config":
        """Load configuration from a JSON file, environment fills the gaps"""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return cls(**config_data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {str(e)}")
            logger.info("Using environment/default configuration")
        return cls()

    def save_to_file(self, config_path: str = CONFIG_PATH):
        """Save configuration to JSON file"""
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            logger.error(f"Failed to save config to {config_path}: {str(e)}")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def load_config() -> Config:
    """Load configuration with priority: config file > env vars > defaults"""
    if os.path.exists(CONFIG_PATH):
        return Config.load_from_file(CONFIG_PATH)
    logger.info(f"Config file not found at {CONFIG_PATH}, using environment variables")
    return Config()


config = load_config()
