"""
JSON-based configuration for rocket_templates.

Configuration is built once at process start and handed to the service,
exporter and storage objects that need it; nothing reads it from globals.

Lookup order for the config file (first found wins):
1. Explicit path (CLI --config)
2. .rokit.json next to the design file being processed
3. .rokit.json in the current working directory
4. ~/.rokit.json

Environment variables (ROKIT_*) override file values for deployment secrets.

Example .rokit.json:
{
    "design": {
        "default_material": "cardstock",
        "body_length_mm": 450.0,
        "body_diameter_mm": 55.0
    },
    "materials": {
        "densities": {"cardstock": 750.0, "foam_board": 240.0}
    },
    "export": {
        "samples_per_segment": 24,
        "stroke_width_mm": 0.25
    },
    "blob_storage": {
        "backend": "filesystem",
        "root_dir": "./templates"
    }
}
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".rokit.json"

# Densities in kg/m^3
DEFAULT_DENSITIES: Dict[str, float] = {
    "paper": 800.0,
    "cardstock": 750.0,
    "poster_board": 680.0,
    "corrugated_cardboard": 150.0,
    "foam_board": 240.0,
    "balsa": 160.0,
    "plywood": 600.0,
}


@dataclass
class DesignDefaultsConfig:
    """Defaults applied to newly created designs."""
    default_cutting_method: str = "digital"
    default_material: str = "cardstock"
    scale: float = 1.0
    body_length_mm: float = 500.0
    body_diameter_mm: float = 60.0


@dataclass
class MaterialsConfig:
    """Material density table used by mass aggregation."""
    densities: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DENSITIES))
    fallback_density: float = 750.0


@dataclass
class AnalysisConfig:
    """Constants for the performance estimate."""
    launch_impulse_ns: float = 1.5
    air_density: float = 1.225
    gravity: float = 9.81


@dataclass
class ExportConfig:
    """Template layout and rendering settings."""
    samples_per_segment: int = 16
    spacing_mm: float = 8.0
    margin_mm: float = 12.0
    section_header_mm: float = 10.0
    stroke_width_mm: float = 0.3
    font_size_mm: float = 3.5
    font_family: str = "Arial"
    dxf_version: str = "R2010"
    max_workers: int = 2


@dataclass
class StorageConfig:
    """Design document store."""
    backend: str = "memory"  # "memory" or "json"
    path: str = "designs"


@dataclass
class BlobStorageConfig:
    """Where persisted templates go."""
    backend: str = "none"  # "none", "filesystem" or "http"
    root_dir: str = "templates"
    base_url: str = ""
    token: str = ""
    timeout_s: float = 10.0


@dataclass
class PaginationConfig:
    """Listing defaults and bounds."""
    default_limit: int = 10
    max_limit: int = 100
    default_sort_by: str = "updated_at"
    default_sort_order: str = "desc"


_SECTIONS = (
    "design", "materials", "analysis", "export",
    "storage", "blob_storage", "pagination",
)


@dataclass
class AppConfig:
    """Complete application configuration."""
    design: DesignDefaultsConfig = field(default_factory=DesignDefaultsConfig)
    materials: MaterialsConfig = field(default_factory=MaterialsConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    blob_storage: BlobStorageConfig = field(default_factory=BlobStorageConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.write_text(self.to_json(), encoding='utf-8')
        logger.info("Configuration saved to %s", path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """Create configuration from a dictionary.

        Unknown sections and keys are ignored, so config files written for
        newer versions still load.
        """
        config = cls()
        for section_name in _SECTIONS:
            values = data.get(section_name)
            if not isinstance(values, dict):
                continue
            section = getattr(config, section_name)
            for key, value in values.items():
                if hasattr(section, key):
                    setattr(section, key, value)
                else:
                    logger.debug("Ignoring unknown config key %s.%s", section_name, key)
        materials = data.get("materials")
        if isinstance(materials, dict) and isinstance(materials.get("densities"), dict):
            # Overrides extend the built-in table instead of replacing it
            config.materials.densities = {**DEFAULT_DENSITIES, **materials["densities"]}
        return config

    @classmethod
    def from_json(cls, json_str: str) -> 'AppConfig':
        """Create configuration from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'AppConfig':
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Configuration loaded from %s", path)
        return cls.from_dict(data)


def find_config_file(
    design_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Find the configuration file following the lookup order.

    Args:
        design_path: Design document being processed (its directory is searched)
        explicit_config: Explicitly specified config path

    Returns:
        Path to the config file, or None
    """
    if explicit_config:
        explicit = Path(explicit_config)
        if explicit.exists():
            return explicit
        logger.warning("Explicit config not found: %s", explicit)

    candidates = []
    if design_path:
        candidates.append(Path(design_path).parent / CONFIG_FILENAME)
    candidates.append(Path.cwd() / CONFIG_FILENAME)
    candidates.append(Path.home() / CONFIG_FILENAME)

    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(
    design_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load configuration, falling back to defaults, then apply env overrides."""
    config = AppConfig()
    config_path = find_config_file(design_path, explicit_config)

    if config_path:
        try:
            config = AppConfig.load(config_path)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to load config %s: %s", config_path, e)

    return apply_env_overrides(config, os.environ if environ is None else environ)


def merge_configs(base: AppConfig, override: AppConfig) -> AppConfig:
    """Merge two configurations; only non-default override values apply."""
    merged = AppConfig.from_dict(base.to_dict())
    defaults = AppConfig()

    for section_name in _SECTIONS:
        override_section = getattr(override, section_name)
        default_section = getattr(defaults, section_name)
        merged_section = getattr(merged, section_name)
        for f in fields(override_section):
            value = getattr(override_section, f.name)
            if value != getattr(default_section, f.name):
                setattr(merged_section, f.name, value)

    return merged


# env var -> (section, key, type)
_ENV_OVERRIDES = {
    "ROKIT_STORAGE_BACKEND": ("storage", "backend", str),
    "ROKIT_STORAGE_PATH": ("storage", "path", str),
    "ROKIT_BLOB_BACKEND": ("blob_storage", "backend", str),
    "ROKIT_BLOB_ROOT": ("blob_storage", "root_dir", str),
    "ROKIT_BLOB_URL": ("blob_storage", "base_url", str),
    "ROKIT_BLOB_TOKEN": ("blob_storage", "token", str),
    "ROKIT_BLOB_TIMEOUT": ("blob_storage", "timeout_s", float),
}


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    """Apply ROKIT_* environment variables on top of a configuration.

    Malformed numeric values are logged and skipped.
    """
    for var, (section_name, key, cast) in _ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning("Ignoring %s: cannot parse %r", var, raw)
            continue
        setattr(getattr(config, section_name), key, value)
        # Never log secrets
        logger.debug("Config %s.%s set from %s", section_name, key, var)
    return config


def create_sample_config(path: Union[str, Path] = CONFIG_FILENAME) -> Path:
    """Write a sample configuration file with every section filled in."""
    sample = {"_comment": "rocket_templates configuration", "_version": "1.0"}
    sample.update(AppConfig().to_dict())

    path = Path(path)
    path.write_text(json.dumps(sample, indent=2, ensure_ascii=False), encoding='utf-8')
    logger.info("Sample configuration created: %s", path)
    return path
