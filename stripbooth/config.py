from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "StripBooth"
    app_description: str = "Capture, composite and decorate photo strips from a template"
    debug: bool = False
    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 8000

    camera_index: int = 0
    camera_width: int = 1280
    camera_height: int = 720
    camera_fps: int = 30
    preview_width: int = 640
    preview_quality: int = 60
    preview_fps: int = 15

    # Capture sequence timing, in seconds
    countdown_steps: int = 3
    countdown_interval: float = 1.0
    auto_advance_delay: float = 1.5
    settle_delay: float = 0.5

    # On-screen width of the editing preview that sticker sizes are authored against
    sticker_preview_width: int = 400

    photos_dir: str = "stripbooth/static/photos"
    export_base_url: Optional[str] = None
    upload_timeout: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
