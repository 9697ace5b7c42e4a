"""MilkTrack settings: photo limits, vision backend, store paths, validation ranges."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .validate import RangeRule, default_rules


@dataclass
class ImageConfig:
    max_size: int = 1600
    jpeg_quality: int = 85


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.5-flash"


@dataclass
class VisionConfig:
    backend: str = "gemini"
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)

    @property
    def api_key(self) -> str:
        """API key of the selected backend."""
        match self.backend:
            case "gemini":
                return self.gemini.api_key
            case "claude":
                return self.claude.api_key
            case _:
                return ""


@dataclass
class StoreConfig:
    path: str = "~/.config/milktrack/milktrack.db"
    bucket_dir: str = "~/.config/milktrack/receipts"
    public_base_url: str = ""


@dataclass
class MilkTrackConfig:
    image: ImageConfig = field(default_factory=ImageConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    validation: dict[str, RangeRule] = field(default_factory=default_rules)


def _key(section: dict, *env_names: str) -> str:
    """API key from a config table, else from the first set env variable."""
    if section.get("api_key"):
        return section["api_key"]
    for name in env_names:
        if os.environ.get(name):
            return os.environ[name]
    return ""


def _read_toml(path: str | Path | None) -> dict:
    if path is None:
        return {}
    p = Path(path).expanduser()
    if not p.exists():
        return {}
    with p.open("rb") as f:
        return tomllib.load(f)


def load_config(path: str | Path | None = None) -> MilkTrackConfig:
    """Read MilkTrack settings from a TOML file.

    Missing files and missing tables give the defaults. Keys left out of
    the file are taken from GEMINI_API_KEY (or VITE_GEMINI_API_KEY, as the
    web build names it) and ANTHROPIC_API_KEY.
    """
    raw = _read_toml(path)

    image = raw.get("image", {})
    vision = raw.get("vision", {})
    store = raw.get("store", {})
    gemini = vision.get("gemini", {})
    claude = vision.get("claude", {})

    rules = default_rules()
    for name, override in raw.get("validation", {}).items():
        rules[name] = rules.get(name, RangeRule(field=name)).merged(override)

    defaults = StoreConfig()
    return MilkTrackConfig(
        image=ImageConfig(
            max_size=int(image.get("max_size", ImageConfig.max_size)),
            jpeg_quality=int(image.get("jpeg_quality", ImageConfig.jpeg_quality)),
        ),
        vision=VisionConfig(
            backend=vision.get("backend", "gemini"),
            gemini=GeminiVisionConfig(
                api_key=_key(gemini, "GEMINI_API_KEY", "VITE_GEMINI_API_KEY"),
                model=gemini.get("model", GeminiVisionConfig.model),
            ),
            claude=ClaudeVisionConfig(
                api_key=_key(claude, "ANTHROPIC_API_KEY"),
                model=claude.get("model", ClaudeVisionConfig.model),
            ),
        ),
        store=StoreConfig(
            path=store.get("path", defaults.path),
            bucket_dir=store.get("bucket_dir", defaults.bucket_dir),
            public_base_url=store.get("public_base_url", defaults.public_base_url),
        ),
        validation=rules,
    )
