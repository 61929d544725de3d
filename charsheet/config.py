from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for paths, storage keys, limits and notification timing.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHARSHEET_",
        extra="ignore",
    )

    project_root: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parents[1]
    )

    data_dir: Path = Field(default=Path("data"))
    output_dir: Path = Field(default=Path("artifacts"))
    store_path: Optional[Path] = None
    log_dir: Optional[Path] = None
    log_level: str = "INFO"

    # uploads larger than this never reach the extractor
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    fetch_timeout_s: float = Field(default=20.0, gt=0)
    user_agent: str = "Mozilla/5.0 (X11; Linux x86_64) charsheet/0.1"

    sheet_key: str = "currentSheet"
    raw_text_key: str = "rawSheetText"

    notify_success_ms: int = 3000
    notify_error_ms: int = 5000
    notify_info_ms: int = 3000
    notify_warning_ms: int = 4000

    @field_validator("data_dir", "output_dir", "store_path", "log_dir", mode="before")
    @classmethod
    def _coerce_path(cls, v):
        # Accept strings from env and coerce; allow Path passthrough.
        if v is None:
            return v
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return None
            return Path(s).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v

    @computed_field(return_type=Path)
    def db_path(self) -> Path:
        return self.store_path or self.data_dir / "charsheet.sqlite"

    @computed_field(return_type=Path)
    def logs_path(self) -> Path:
        return self.log_dir or self.data_dir / "logs"

    def model_post_init(self, __context) -> None:
        # Resolve relative paths against project_root
        if not self.data_dir.is_absolute():
            self.data_dir = (self.project_root / self.data_dir).resolve()
        if not self.output_dir.is_absolute():
            self.output_dir = (self.project_root / self.output_dir).resolve()
        if self.store_path is not None and not self.store_path.is_absolute():
            self.store_path = (self.project_root / self.store_path).resolve()
        if self.log_dir is not None and not self.log_dir.is_absolute():
            self.log_dir = (self.project_root / self.log_dir).resolve()

        self.data_dir.mkdir(parents=True, exist_ok=True)


# Lazy singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
