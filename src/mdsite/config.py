"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"


class Settings(BaseModel):
    app_name:        str = "mdsite"
    log_level:       str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$", description="Root log level")
    parser_config:   str = Field(default="gfm-like",      description="MarkdownIt parser preset name")
    asset_dir:       str = Field(default="assets",        description="Output subdirectory for content-addressed assets")
    line_marker:     str = Field(default="<a-lf></a-lf>", description="Marker inserted before every highlighted code line")
    svg_precision:   int = Field(default=3, ge=1, le=12,  description="Significant digits kept in SVG numbers")
    math_fallback:   str = Field(default="drop", pattern="^(drop|source)$", description="drop or source on math errors")
    datetime_format: str = Field(default="%B %e %Y at %H:%M", description="strftime format for format_datetime")
    port:            int = Field(default=8000, ge=0, le=65535, description="Development server port")


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then MDSITE_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"MDSITE_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
