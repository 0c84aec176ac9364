"""Configuration management with YAML and environment variables."""
import os
from pathlib import Path
from typing import Optional, List
import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TMDbConfig(BaseModel):
    api_key: str
    base_url: str = "https://api.themoviedb.org/3"
    image_base_url: str = "https://image.tmdb.org/t/p/w500"


class TVDbConfig(BaseModel):
    api_key: str
    pin: Optional[str] = None
    base_url: str = "https://api4.thetvdb.com/v4"
    image_base_url: str = "https://artworks.thetvdb.com"
    token_validity_hours: int = 24  # Non confirmé par le serveur


class LibraryConfig(BaseModel):
    root: str = "/library"
    shows_dir: str = "Shows"
    movies_dir: str = "Movies"
    imported_dir: str = "Imported"  # Réservé aux vidéos externes, jamais scanné ni trié
    video_extensions: List[str] = Field(default_factory=lambda: ["mp4", "m4v", "mov", "avi", "mkv"])


class MetadataConfig(BaseModel):
    refresh_days: int = 7
    thumbnail_offset_seconds: float = 20.0
    thumbnail_max_width: int = 960
    thumbnail_max_height: int = 540
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"


class HTTPConfig(BaseModel):
    timeout: float = 30.0
    max_retries: int = 3
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 60


class AppConfig(BaseModel):
    data_dir: str = "/data"
    log_level: str = "INFO"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__")

    tmdb: Optional[TMDbConfig] = None
    tvdb: Optional[TVDbConfig] = None
    library: LibraryConfig = Field(default_factory=LibraryConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @classmethod
    def load_from_yaml(cls, yaml_path: str) -> "Config":
        """Load configuration from YAML file, override with env vars."""
        config_path = Path(yaml_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {yaml_path}\n"
                f"Please create config/config.yaml from config.example.yaml"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        # Override with environment variables
        env_overrides = {}
        for key in ["tmdb", "tvdb", "library"]:
            if key in yaml_data and yaml_data[key]:
                for subkey in yaml_data[key]:
                    env_key = f"{key.upper()}__{subkey.upper()}"
                    env_value = os.getenv(env_key)
                    if env_value:
                        env_overrides.setdefault(key, {})[subkey] = env_value

        # Merge env overrides
        for key, value in env_overrides.items():
            yaml_data[key].update(value)

        return cls(**yaml_data)


# Global config instance (will be initialized in main.py)
config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance."""
    if config is None:
        raise RuntimeError("Config not initialized. Call init_config() first.")
    return config


def init_config(config_path: str = "/config/config.yaml") -> Config:
    """Initialize global config from YAML file."""
    global config
    config = Config.load_from_yaml(config_path)
    return config


def set_config(new_config: Config) -> Config:
    """Install an already-built config (tests, embedding)."""
    global config
    config = new_config
    return config
