"""Configuration helpers for the booth estimator."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .models import STORAGE_KEY

DEFAULT_CONFIG_PATH = Path("config/boothcost.json")
LOGGER = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Retry/backoff policy for generator calls."""

    timeout_seconds: float = 120.0
    retries: int = 0
    backoff_factor: float = 0.0


@dataclass
class GeneratorConfig:
    provider: str = "openai"
    model: str = "gpt-4o"
    api_key_env: str = "OPENAI_API_KEY"
    api_key_path: Path | None = None
    max_output_tokens: int = 8000
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def resolve_api_key(self) -> Optional[str]:
        """Key for the generator: ``api_key_env`` wins, then ``api_key_path``."""
        from_env = os.environ.get(self.api_key_env, "").strip() if self.api_key_env else ""
        if from_env:
            return from_env
        if not self.api_key_path:
            return None
        key_file = Path(self.api_key_path).expanduser()
        try:
            from_file = key_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            LOGGER.warning(
                "Generator config (%s): cannot read api_key_path %s: %s",
                self.provider,
                key_file,
                exc,
            )
            return None
        return from_file or None


@dataclass
class ImageConfig:
    max_dimension: int = 1024
    jpeg_quality: float = 0.82
    decode_timeout_seconds: float = 8.0
    max_images: int = 10

    @property
    def pillow_quality(self) -> int:
        return int(round(self.jpeg_quality * 100))


@dataclass
class StoreConfig:
    directory: Path = Path("data/estimates")
    key: str = STORAGE_KEY


@dataclass
class EstimatorConfig:
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    quote_prefix: str = "DCE"

    @classmethod
    def load(cls, path: Path | None = None) -> "EstimatorConfig":
        """Load configuration from YAML/JSON file."""
        config_path = path or DEFAULT_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Estimator configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as f:
            suffix = config_path.suffix.lower()
            if suffix in {".yaml", ".yml"}:
                raw = yaml.safe_load(f)
            else:
                raw = json.load(f)

        return cls.from_dict(raw or {})

    @classmethod
    def from_dict(cls, raw: dict) -> "EstimatorConfig":
        generator = raw.get("generator") or {}
        images = raw.get("images") or {}
        store = raw.get("store") or {}

        retry = generator.get("retry") or {}
        retry_cfg = RetryPolicy(
            timeout_seconds=float(retry.get("timeout_seconds", 120.0)),
            retries=int(_env("BOOTHCOST_GENERATOR_RETRIES", retry.get("retries", 0))),
            backoff_factor=float(retry.get("backoff_factor", 0.0)),
        )
        generator_cfg = GeneratorConfig(
            provider=generator.get("provider", "openai"),
            model=_env("BOOTHCOST_MODEL", generator.get("model", "gpt-4o")),
            api_key_env=generator.get("api_key_env", "OPENAI_API_KEY"),
            api_key_path=(
                Path(generator["api_key_path"]).expanduser()
                if generator.get("api_key_path")
                else None
            ),
            max_output_tokens=int(_env("BOOTHCOST_MAX_TOKENS", generator.get("max_output_tokens", 8000))),
            retry=retry_cfg,
        )
        image_cfg = ImageConfig(
            max_dimension=int(images.get("max_dimension", 1024)),
            jpeg_quality=float(images.get("jpeg_quality", 0.82)),
            decode_timeout_seconds=float(
                _env("BOOTHCOST_IMAGE_TIMEOUT", images.get("decode_timeout_seconds", 8.0))
            ),
            max_images=int(images.get("max_images", 10)),
        )
        store_cfg = StoreConfig(
            directory=Path(_env("BOOTHCOST_STORE_DIR", store.get("directory", "data/estimates"))),
            key=store.get("key", STORAGE_KEY),
        )
        return cls(
            generator=generator_cfg,
            images=image_cfg,
            store=store_cfg,
            quote_prefix=raw.get("quote_prefix", "DCE"),
        )


def _env(name: str, default):
    """Prefer a non-empty environment variable over the file value."""
    value = os.environ.get(name, "")
    if value.strip():
        return value.strip()
    return default


__all__ = [
    "EstimatorConfig",
    "GeneratorConfig",
    "ImageConfig",
    "StoreConfig",
    "RetryPolicy",
    "DEFAULT_CONFIG_PATH",
]
