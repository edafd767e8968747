import json
import logging
import os
import tempfile
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

class YtDlpConfig(BaseModel):
    executable_path: Optional[str] = Field(default=None, description="Explicit yt-dlp executable path")
    system_paths: list = Field(
        default=["/usr/local/bin/yt-dlp", "/usr/bin/yt-dlp"],
        description="Well-known system install locations"
    )
    managed_bin_dir: str = Field(default="bin", description="Directory for the provisioned yt-dlp binary")
    release: str = Field(default="2025.09.26", description="Pinned yt-dlp release tag to provision")
    release_url: str = Field(
        default="https://github.com/yt-dlp/yt-dlp/releases/download/{release}/{asset}",
        description="Release asset URL template"
    )
    cookies_file: Optional[str] = Field(default="cookies.txt", description="Netscape cookie file passed to extractors")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=3, ge=0, description="Number of retries inside yt-dlp")

class StorageConfig(BaseModel):
    downloads_dir: str = Field(default="downloads", description="Directory for permanent saved downloads")
    fallback_subdir: str = Field(default="swift-shorts-downloads", description="Subdirectory of the platform temp dir used as fallback")
    temp_subdir: str = Field(default="swift-shorts-tmp", description="Subdirectory of the platform temp dir for transient files")
    cleanup_delay_seconds: float = Field(default=5.0, ge=0, description="Delay before transient files are unlinked")

class DownloadConfig(BaseModel):
    chunk_size: int = Field(default=256 * 1024, ge=1024, description="Read size for streamed bodies")
    info_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for metadata lookups")
    first_byte_timeout_seconds: float = Field(default=60.0, gt=0, description="Time allowed before a backend yields its first bytes")
    file_timeout_seconds: float = Field(default=3600.0, gt=0, description="Timeout for download-to-file attempts")

class RedisConfig(BaseModel):
    enabled: bool = Field(default=False, description="Enable the metadata cache")
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")
    info_cache_ttl: int = Field(default=300, ge=1, description="Metadata cache TTL in seconds")

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
    title: str = Field(default="Swift Shorts Downloader API", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")

class Config(BaseModel):
    """Main configuration model"""
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @property
    def fallback_downloads_dir(self) -> str:
        return os.path.join(tempfile.gettempdir(), self.storage.fallback_subdir)

    @property
    def temp_dir(self) -> str:
        return os.path.join(tempfile.gettempdir(), self.storage.temp_subdir)

    @classmethod
    def load_from_file(cls, config_path: str = "config.json") -> "Config":
        """Load configuration from JSON file"""
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                logger.info(f"Configuration loaded from {config_path}")
                return cls(**config_data)
            except Exception as e:
                logger.error(f"Failed to load config from {config_path}: {str(e)}")
                logger.info("Using default configuration")
        else:
            logger.warning(f"Config file {config_path} not found, using defaults")

        return cls()

    @classmethod
    def load_from_env(cls, env: Optional["EnvOverrides"] = None) -> "Config":
        """Load configuration from environment variables"""
        env = env or EnvOverrides()
        config_data: Dict[str, Any] = {}

        ytdlp = {}
        if env.ytdlp_path:
            ytdlp["executable_path"] = env.ytdlp_path
        if env.cookie_file_path:
            ytdlp["cookies_file"] = env.cookie_file_path
        if ytdlp:
            config_data["ytdlp"] = ytdlp

        if env.downloads_dir:
            config_data["storage"] = {"downloads_dir": env.downloads_dir}

        if env.redis_url:
            config_data["redis"] = {"enabled": True, "url": env.redis_url}

        if env.log_level:
            config_data["logging"] = {"level": env.log_level}

        if env.cors_origins:
            config_data["api"] = {
                "cors_origins": [o.strip() for o in env.cors_origins.split(",") if o.strip()]
            }

        return cls(**config_data) if config_data else cls()

class EnvOverrides(BaseSettings):
    """Environment variables consumed by the service"""
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    config_path: str = "config.json"
    ytdlp_path: Optional[str] = None
    downloads_dir: Optional[str] = None
    cookie_file_path: Optional[str] = None
    redis_url: Optional[str] = None
    log_level: Optional[str] = None
    cors_origins: Optional[str] = None

def load_config() -> Config:
    """Load configuration with priority: config.json > env vars > defaults"""
    env = EnvOverrides()

    if os.path.exists(env.config_path):
        return Config.load_from_file(env.config_path)
    else:
        logger.info(f"Config file not found at {env.config_path}, checking environment variables")
        return Config.load_from_env(env)

# Global config instance
config = load_config()
