"""Target MCU catalog loading and validation for YAML-based target files."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from dapflash.core.errors import TargetLoadError, TargetValidationError
from dapflash.core.model import BinOptions, ConnectOptions, TargetMCU

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise TargetValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedTargets:
    targets: dict[str, TargetMCU]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("dapflash.schemas").joinpath("target.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _target_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "dapflash/targets", xdg_data / "dapflash/targets"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TargetLoadError(f"Could not read target file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise TargetValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise TargetValidationError(f"Target file {path} must contain a mapping at root")
    return loaded


def _normalize_address(value: Any, *, context: str) -> int:
    if isinstance(value, int):
        address = value
    else:
        try:
            address = int(str(value).strip(), 0)
        except ValueError as exc:
            raise TargetValidationError(f"{context} must be an integer or 0x-prefixed hex string") from exc
    if address < 0 or address > 0xFFFFFFFF:
        raise TargetValidationError(f"{context} must fit in a 32-bit address")
    return address


def _build_target(doc: dict[str, Any], source: Path | Traversable) -> TargetMCU:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise TargetValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    target_id = doc["id"].strip().lower()
    connect_doc = doc.get("connect", {})
    connect = ConnectOptions(
        frequency_hz=int(connect_doc["frequency_hz"]) if "frequency_hz" in connect_doc else None,
        connect_mode=connect_doc.get("mode"),
        pack=connect_doc.get("pack"),
    )

    bin_doc = doc.get("bin", {})
    base_address = None
    if bin_doc.get("base_address") is not None:
        base_address = _normalize_address(
            bin_doc["base_address"],
            context=f"{target_id}.bin.base_address",
        )
    bin_defaults = BinOptions(base_address=base_address, skip=int(bin_doc.get("skip", 0)))

    return TargetMCU(
        id=target_id,
        name=doc["name"],
        description=doc.get("description", ""),
        connect=connect,
        bin_defaults=bin_defaults,
    )


def _iter_packaged_target_paths() -> list[Traversable]:
    target_root = resources.files("dapflash.targets")
    return [item for item in target_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_target_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _target_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_targets() -> LoadedTargets:
    targets: dict[str, TargetMCU] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_target_paths(), key=lambda p: p.name):
        target = _build_target(_read_yaml(path), path)
        targets[target.id] = target

    for path in _iter_user_target_paths():
        target = _build_target(_read_yaml(path), path)
        if target.id in targets:
            warning = f"User target '{target.id}' overrides packaged target"
            LOGGER.warning(warning)
            warnings.append(warning)
        targets[target.id] = target

    LOGGER.debug("Loaded %d target(s): %s", len(targets), ", ".join(sorted(targets)))
    return LoadedTargets(targets=targets, warnings=tuple(warnings))
