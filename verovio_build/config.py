"""
Build settings.

Settings come from, in decreasing precedence: command-line flags, the
environment provided by the outer build tool, an optional YAML file and
built-in defaults. A setting is built once per run and never persisted.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .downloader import DEFAULT_TIMEOUT
from .errors import ConfigurationError
from .platforms import TargetPlatform
from .release import VEROVIO_RELEASE, PinnedRelease


logger = logging.getLogger("verovio-build.config")

ENV_SOURCE_DIR = "VEROVIO_SOURCE_DIR"
ENV_OFFLINE = "VEROVIO_OFFLINE"
ENV_CONFIG = "VEROVIO_BUILD_CONFIG"
ENV_FEATURE_BUNDLED = "CARGO_FEATURE_BUNDLED"
ENV_FEATURE_PREBUILT = "CARGO_FEATURE_PREBUILT"
ENV_FEATURE_FORCE_REBUILD = "CARGO_FEATURE_FORCE_REBUILD"
ENV_MANIFEST_DIR = "CARGO_MANIFEST_DIR"
ENV_OUT_DIR = "OUT_DIR"
ENV_TARGET = "TARGET"

DEFAULT_LOCAL_CHECKOUT = "../../verovio"
DEFAULT_WORKSPACE_ROOT = "../.."

KNOWN_SECTIONS = {"release", "paths", "download", "compiler", "logging"}

FALSY = {"0", "false", "no", "off"}


def _flag(environ: Mapping[str, str], name: str) -> bool:
    """Feature toggles are on when the variable is set to anything truthy."""
    value = environ.get(name)
    if value is None:
        return False
    return value.strip().lower() not in FALSY


def load_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load and validate a YAML configuration file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Parsed configuration mapping

    Raises:
        ConfigurationError: File missing, unreadable or malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML configuration: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration must be a mapping: {config_path}")

    unknown = set(config) - KNOWN_SECTIONS
    if unknown:
        raise ConfigurationError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")
    for section, value in config.items():
        if value is not None and not isinstance(value, dict):
            raise ConfigurationError(f"Configuration section '{section}' must be a mapping")
    return config


@dataclass
class BuildSettings:
    """Everything the pipeline needs to know for one run."""
    manifest_dir: Path
    out_dir: Optional[Path] = None
    target: TargetPlatform = field(default_factory=TargetPlatform.detect)
    release: PinnedRelease = VEROVIO_RELEASE
    source_override: Optional[str] = None
    local_checkout: Optional[Path] = None
    workspace_root: Optional[Path] = None
    bundled: bool = False
    prebuilt: bool = False
    force_rebuild: bool = False
    offline: bool = False
    download_timeout: float = DEFAULT_TIMEOUT
    opt_level: str = "2"
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self):
        self.manifest_dir = Path(self.manifest_dir)
        if self.out_dir is not None:
            self.out_dir = Path(self.out_dir)
        if self.local_checkout is None:
            self.local_checkout = self.manifest_dir / DEFAULT_LOCAL_CHECKOUT
        if self.workspace_root is None:
            self.workspace_root = (self.manifest_dir / DEFAULT_WORKSPACE_ROOT).resolve()

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None,
             config_path: Optional[Union[str, Path]] = None,
             **overrides: Any) -> "BuildSettings":
        """
        Build settings from the environment and an optional YAML file.

        Args:
            environ: Environment mapping (defaults to os.environ)
            config_path: YAML file; falls back to $VEROVIO_BUILD_CONFIG
            **overrides: Values taking precedence over everything else;
                None values are ignored

        Raises:
            ConfigurationError: A required value is missing or invalid
        """
        environ = os.environ if environ is None else environ
        overrides = {k: v for k, v in overrides.items() if v is not None}

        config_path = config_path or environ.get(ENV_CONFIG)
        config = load_config_file(config_path) if config_path else {}

        manifest_dir = overrides.pop("manifest_dir", None) or environ.get(ENV_MANIFEST_DIR)
        if not manifest_dir:
            raise ConfigurationError(f"{ENV_MANIFEST_DIR} is not set and --manifest-dir was not given")
        manifest_dir = Path(manifest_dir)

        release_cfg = config.get("release") or {}
        paths_cfg = config.get("paths") or {}
        download_cfg = config.get("download") or {}
        compiler_cfg = config.get("compiler") or {}
        logging_cfg = config.get("logging") or {}

        release = VEROVIO_RELEASE
        if release_cfg:
            if "version" in release_cfg and "sha256" not in release_cfg:
                raise ConfigurationError("release.version requires a matching release.sha256")
            release = replace(
                release,
                version=str(release_cfg.get("version", release.version)),
                sha256=str(release_cfg.get("sha256", release.sha256)),
                url_template=str(release_cfg.get("url_template", release.url_template)),
            )
            changed = [key for key in ("sha256", "url_template")
                       if getattr(release, key) != getattr(VEROVIO_RELEASE, key)]
            if changed:
                logger.warning(f"Pinned Verovio release overridden by configuration ({', '.join(changed)}); "
                               f"downloads for {release.version} are verified against {release.sha256}")

        local_checkout = paths_cfg.get("local_checkout")
        workspace_root = paths_cfg.get("workspace_root")

        triple = environ.get(ENV_TARGET)
        target = TargetPlatform.from_triple(triple) if triple else TargetPlatform.detect()

        try:
            download_timeout = float(download_cfg.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"download.timeout must be a number: {e}") from e

        values: Dict[str, Any] = {
            "manifest_dir": manifest_dir,
            "out_dir": environ.get(ENV_OUT_DIR) or None,
            "target": target,
            "release": release,
            "source_override": environ.get(ENV_SOURCE_DIR) or None,
            "local_checkout": (manifest_dir / local_checkout) if local_checkout else None,
            "workspace_root": (manifest_dir / workspace_root).resolve() if workspace_root else None,
            "bundled": _flag(environ, ENV_FEATURE_BUNDLED),
            "prebuilt": _flag(environ, ENV_FEATURE_PREBUILT),
            "force_rebuild": _flag(environ, ENV_FEATURE_FORCE_REBUILD),
            "offline": _flag(environ, ENV_OFFLINE),
            "download_timeout": download_timeout,
            "opt_level": str(compiler_cfg.get("opt_level", "2")),
            "log_level": str(logging_cfg.get("level", "INFO")).upper(),
            "log_format": str(logging_cfg.get("format", "text")),
        }

        if "target" in overrides and isinstance(overrides["target"], str):
            overrides["target"] = TargetPlatform.from_triple(overrides["target"])
        for key in ("bundled", "prebuilt", "force_rebuild", "offline"):
            # Command-line switches can only turn a toggle on.
            if overrides.get(key) is False:
                overrides.pop(key)
        values.update(overrides)

        return cls(**values)

    def require_out_dir(self) -> Path:
        if self.out_dir is None:
            raise ConfigurationError(f"{ENV_OUT_DIR} is not set and --out-dir was not given")
        return self.out_dir
