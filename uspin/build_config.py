from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

IMAGE_TYPE_LIVEOS = "liveos"

IMAGE_TYPES = {IMAGE_TYPE_LIVEOS}
COMPRESSION_TYPES = {"gzip", "xz"}
LOADER_TYPES = {"syslinux"}

DEFAULT_ROOTFS_SIZE = 4000


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table, got {type(value).__name__}")
    return value


def _str_list(raw: Dict[str, Any], section: str, key: str, default: List[str]) -> List[str]:
    value = _section(raw, section).get(key)
    if value is None:
        return list(default)
    # A bare string would otherwise be iterated character by character
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ConfigError(f"{section}.{key} must be a list of strings")
    return list(value)


def _number(raw: Dict[str, Any], section: str, key: str, kind: type) -> Any:
    value = _section(raw, section).get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be a number")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class ImageConfig:
    raw: Dict[str, Any]

    @property
    def image_type(self) -> str:
        return str(_section(self.raw, "image").get("type") or "").strip()

    @property
    def packages(self) -> str:
        return str(_section(self.raw, "image").get("packages") or "").strip()

    @property
    def package_manager(self) -> str:
        return str(_section(self.raw, "image").get("package_manager") or "eopkg").strip()

    @property
    def branding_title(self) -> str:
        return str(_section(self.raw, "branding").get("title") or "Linux")

    @property
    def liveos_compression(self) -> str:
        return str(_section(self.raw, "liveos").get("compression") or "gzip")

    @property
    def liveos_filename(self) -> str:
        return str(_section(self.raw, "liveos").get("filename") or "").strip()

    @property
    def liveos_rootfs_size(self) -> int:
        size = _number(self.raw, "liveos", "rootfs_size", int)
        return DEFAULT_ROOTFS_SIZE if size is None else size

    @property
    def liveos_rootfs_format(self) -> str:
        return str(_section(self.raw, "liveos").get("rootfs_format") or "ext4")

    @property
    def liveos_bootdir(self) -> str:
        return str(_section(self.raw, "liveos").get("bootdir") or "boot").strip()

    @property
    def liveos_label(self) -> str:
        return str(_section(self.raw, "liveos").get("label") or "LiveOS").strip()

    @property
    def liveos_bootloaders(self) -> List[str]:
        return _str_list(self.raw, "liveos", "bootloaders", ["syslinux"])

    @property
    def syslinux_asset_dirs(self) -> List[str]:
        return _str_list(self.raw, "syslinux", "asset_dirs", [])

    @property
    def apt_suite(self) -> str:
        return str(_section(self.raw, "apt").get("suite") or "stable")

    @property
    def apt_mirror(self) -> str:
        return str(_section(self.raw, "apt").get("mirror") or "http://deb.debian.org/debian")

    @property
    def command_timeout(self) -> Optional[float]:
        t = _number(self.raw, "build", "command_timeout", float)
        return t or None

    def validate(self) -> "ImageConfig":
        if not self.packages:
            raise ConfigError("image.packages cannot be empty")
        if self.image_type not in IMAGE_TYPES:
            raise ConfigError(f"Unknown image type: {self.image_type!r}")

        if self.liveos_compression not in COMPRESSION_TYPES:
            raise ConfigError(f"Unknown compression type: {self.liveos_compression}")
        if not self.liveos_filename:
            raise ConfigError("Invalid filename for livecd")
        if self.liveos_bootdir.startswith("/"):
            raise ConfigError("Invalid path for bootdir")
        label = self.liveos_label
        if not label or " " in label or "/" in label:
            raise ConfigError("Invalid label for LiveOS")
        if self.liveos_rootfs_size <= 0:
            raise ConfigError("liveos.rootfs_size must be positive")

        loaders = self.liveos_bootloaders
        if not loaders:
            raise ConfigError("liveos.bootloaders cannot be empty")
        for name in loaders:
            if name not in LOADER_TYPES:
                raise ConfigError(f"Unknown bootloader configured: {name}")

        if any(not d for d in self.syslinux_asset_dirs):
            raise ConfigError("syslinux.asset_dirs cannot contain empty paths")
        timeout = self.command_timeout
        if timeout is not None and timeout < 0:
            raise ConfigError("build.command_timeout cannot be negative")
        return self


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in ("yaml", "yml"):
        return "yaml"
    if ext == "json":
        return "json"
    # .spin, .toml and anything else
    return "toml"


def _load_raw(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    fmt = _detect_format(path)
    if fmt == "json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
    if fmt == "yaml":
        try:
            import yaml  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError("PyYAML is required to read YAML image configs") from e
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e


def load_image_config(path: str) -> ImageConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    raw = _load_raw(p)
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return ImageConfig(raw=raw).validate()
