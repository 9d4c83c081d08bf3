from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "UIPREVIEW_"
UI_DIR_NAME = "_"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, case_sensitive=False)

    source_root: Path = Path("src")
    content_root: Path = Path("preview-src")
    model_file: str = "ui-model.yml"
    output_root: Path = Path("public")
    bundle_dir: Path = Path("build")
    bundle_name: str = "ui"
    content_suffix: str = ".md"
    preview_pages: list[str] = ["index", "404"]
    diagram_server_url: str | None = None
    strict_templates: bool = False
    rebuild_on_change: bool = True
    watch_sources: bool = True
    bind_host: str = "0.0.0.0"
    bind_port: int = 5252

    @property
    def model_path(self) -> Path:
        return self.content_root / self.model_file

    @property
    def ui_root(self) -> Path:
        return self.output_root / UI_DIR_NAME

    @property
    def image_dir(self) -> Path:
        return self.ui_root / "img"

    def as_env(self) -> dict[str, str]:
        """Export the settings as environment variables for child processes."""
        env: dict[str, str] = {}
        for name, value in self.model_dump().items():
            if value is None:
                continue
            if isinstance(value, list):
                raw = json.dumps(value)
            elif isinstance(value, bool):
                raw = "true" if value else "false"
            else:
                raw = str(value)
            env[f"{ENV_PREFIX}{name.upper()}"] = raw
        return env


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
