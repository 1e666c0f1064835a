"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # HTTP server
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    cors_origins: List[str] = ["http://localhost:3000", "*"]

    # Artifact storage
    download_dir: str = "downloads"
    downloads_url_prefix: str = "/downloads"
    artifact_ttl_seconds: int = 600  # 10 minutes

    # External worker (yt-dlp)
    ytdlp_path: str = "yt-dlp"
    audio_format: str = "mp3"
    merge_output_format: str = "mp4"
    probe_timeout_seconds: int = 60

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
