"""Configuration loading for dotgallery (.dotgallery.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAME = ".dotgallery.yml"
SOURCE_DIR_ENV = "GST_DEBUG_DUMP_DOT_DIR"
DEFAULT_OUTPUT_DIR = Path(".generated") / "svg"
DEFAULT_COMMAND = ("{executable}", "-T{format}", "{source}", "-o", "{target}")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or is inconsistent."""


def default_template_path() -> Path:
    """Return the wrapper-page template shipped with the package."""
    return Path(str(resources.files("dotgallery") / "templates" / "single_graph_template.html"))


@dataclass
class RendererConfig:
    """External renderer invocation settings."""

    executable: str = "dot"
    format: str = "svg"
    command: List[str] = field(default_factory=lambda: list(DEFAULT_COMMAND))

    @property
    def image_suffix(self) -> str:
        return f".{self.format}"


@dataclass
class ServerConfig:
    """Network listener settings."""

    address: str = "0.0.0.0"
    port: int = 3000
    send_timeout: float = 5.0


@dataclass
class WatchConfig:
    """Which files the watchers react to."""

    description_patterns: List[str] = field(default_factory=lambda: ["*.dot"])
    page_patterns: List[str] = field(default_factory=lambda: ["*.html"])
    rerender_on_modify: bool = True


@dataclass
class GalleryConfig:
    """Effective settings for one dotgallery run."""

    source_dir: Path
    output_dir: Path
    template_path: Path = field(default_factory=default_template_path)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    log_file: Optional[Path] = None

    def validate(self) -> None:
        """Reject layouts where wiping the output directory would touch the sources."""
        source = self.source_dir.resolve()
        output = self.output_dir.resolve()
        if output == source or output in source.parents:
            raise ConfigError(
                f"Output directory {output} must not be or contain the source directory {source}"
            )
        if not self.renderer.command:
            raise ConfigError("renderer.command must not be empty")


def load_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> GalleryConfig:
    """Load configuration from disk, falling back to environment and defaults."""
    env = os.environ if environ is None else environ
    base = (cwd or Path.cwd()).resolve()

    data: Dict[str, Any] = {}
    root = base
    if config_path is not None:
        config_file = _resolve_config_path(config_path)
        root = config_file.parent
        if config_file.exists():
            data = _read_config(config_file)
    else:
        candidate = base / CONFIG_FILENAME
        if candidate.exists():
            data = _read_config(candidate)

    env_source = env.get(SOURCE_DIR_ENV)
    source_str = env_source or _as_str(data.get("source_dir"))
    if env_source:
        source_dir = Path(env_source).expanduser()
        if not source_dir.is_absolute():
            source_dir = base / source_dir
    elif source_str:
        source_dir = root / Path(source_str).expanduser()
    else:
        source_dir = base

    output_str = _as_str(data.get("output_dir"))
    output_dir = root / Path(output_str).expanduser() if output_str else base / DEFAULT_OUTPUT_DIR

    template_str = _as_str(data.get("template"))
    template_path = root / Path(template_str).expanduser() if template_str else default_template_path()

    log_str = _as_str(data.get("log_file"))
    log_file = root / Path(log_str).expanduser() if log_str else None

    renderer = RendererConfig()
    renderer_data = _as_dict(data.get("renderer"))
    if renderer_data:
        renderer.executable = _as_str(renderer_data.get("executable")) or renderer.executable
        renderer.format = _as_str(renderer_data.get("format")) or renderer.format
        command = _as_str_list(renderer_data.get("command"))
        if command:
            renderer.command = command

    server = ServerConfig()
    server_data = _as_dict(data.get("server"))
    if server_data:
        server.address = _as_str(server_data.get("address")) or server.address
        port = _as_int(server_data.get("port"))
        if port is not None:
            server.port = port
        send_timeout = _as_float(server_data.get("send_timeout"))
        if send_timeout is not None:
            server.send_timeout = send_timeout

    watch = WatchConfig()
    watch_data = _as_dict(data.get("watch"))
    if watch_data:
        description_patterns = _as_str_list(watch_data.get("description_patterns"))
        if description_patterns:
            watch.description_patterns = description_patterns
        page_patterns = _as_str_list(watch_data.get("page_patterns"))
        if page_patterns:
            watch.page_patterns = page_patterns
        rerender = _as_bool(watch_data.get("rerender_on_modify"))
        if rerender is not None:
            watch.rerender_on_modify = rerender

    return GalleryConfig(
        source_dir=source_dir,
        output_dir=output_dir,
        template_path=template_path,
        renderer=renderer,
        server=server,
        watch=watch,
        log_file=log_file,
    )


def apply_overrides(
    config: GalleryConfig,
    *,
    source_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    address: Optional[str] = None,
    port: Optional[int] = None,
    log_file: Optional[str] = None,
) -> GalleryConfig:
    """Apply command-line overrides on top of a loaded configuration."""
    if source_dir:
        config.source_dir = Path(source_dir).expanduser().resolve()
    if output_dir:
        config.output_dir = Path(output_dir).expanduser().resolve()
    if address:
        config.server.address = address
    if port is not None:
        config.server.port = port
    if log_file:
        config.log_file = Path(log_file).expanduser().resolve()
    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "GalleryConfig",
    "RendererConfig",
    "SOURCE_DIR_ENV",
    "ServerConfig",
    "WatchConfig",
    "apply_overrides",
    "default_template_path",
    "load_config",
]
