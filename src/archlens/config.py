"""Configuration: processing defaults, cycle search bounds and layer policy from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from archlens.graph.processor import ProcessingOptions, Range
from archlens.violations.cycles import DEFAULT_MAX_DEPTH, DEFAULT_MAX_STEPS
from archlens.violations.layers import LayerPolicy, parse_layer_policy

DEFAULT_CONFIG_PATH = Path(".archlens") / "config.yml"

_KNOWN_SECTIONS: frozenset[str] = frozenset({"processing", "cycles", "layers"})


@dataclass(frozen=True)
class CycleSettings:
    """Bounds for the in-memory cycle search."""

    max_depth: int = DEFAULT_MAX_DEPTH
    max_cycles: int | None = None
    max_steps: int = DEFAULT_MAX_STEPS


@dataclass(frozen=True)
class Config:
    """Everything an analysis run can be configured with."""

    processing: ProcessingOptions = field(default_factory=ProcessingOptions)
    cycles: CycleSettings = field(default_factory=CycleSettings)
    layer_policy: LayerPolicy | None = None


def _optional_int(value: object, context: str, *, minimum: int = 0) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{context} must be an integer"
        raise ValueError(msg)
    if value < minimum:
        msg = f"{context} must be >= {minimum}"
        raise ValueError(msg)
    return value


def _parse_range(data: object, context: str) -> Range:
    if data is None:
        return Range()
    if not isinstance(data, dict):
        msg = f"{context} must be a mapping with 'min' and/or 'max'"
        raise ValueError(msg)
    low = _optional_int(data.get("min"), f"{context}.min")
    high = _optional_int(data.get("max"), f"{context}.max")
    if low is not None and high is not None and low > high:
        msg = f"{context}: min ({low}) is greater than max ({high})"
        raise ValueError(msg)
    return Range(low, high)


def _parse_processing(data: object) -> ProcessingOptions:
    if data is None:
        return ProcessingOptions()
    if not isinstance(data, dict):
        msg = "processing must be a mapping"
        raise ValueError(msg)
    self_edges = data.get("self_edges", True)
    if not isinstance(self_edges, bool):
        msg = "processing.self_edges must be a boolean"
        raise ValueError(msg)
    return ProcessingOptions(
        max_depth=_optional_int(data.get("max_depth"), "processing.max_depth"),
        outgoing_range=_parse_range(data.get("outgoing"), "processing.outgoing"),
        incoming_range=_parse_range(data.get("incoming"), "processing.incoming"),
        self_edges=self_edges,
    )


def _parse_cycles(data: object) -> CycleSettings:
    if data is None:
        return CycleSettings()
    if not isinstance(data, dict):
        msg = "cycles must be a mapping"
        raise ValueError(msg)
    max_depth = _optional_int(data.get("max_depth"), "cycles.max_depth", minimum=1)
    max_steps = _optional_int(data.get("max_steps"), "cycles.max_steps", minimum=1)
    return CycleSettings(
        max_depth=max_depth if max_depth is not None else DEFAULT_MAX_DEPTH,
        max_cycles=_optional_int(data.get("max_cycles"), "cycles.max_cycles", minimum=1),
        max_steps=max_steps if max_steps is not None else DEFAULT_MAX_STEPS,
    )


def parse_config(data: object) -> Config:
    """Validate a parsed YAML document and build a :class:`Config`.

    Raises ``ValueError`` naming the offending key on schema errors.
    """
    if data is None:
        return Config()
    if not isinstance(data, dict):
        msg = "config must be a YAML mapping"
        raise ValueError(msg)
    unknown = sorted(set(data) - _KNOWN_SECTIONS)
    if unknown:
        msg = f"unknown config section(s): {', '.join(map(str, unknown))}"
        raise ValueError(msg)

    layers_raw = data.get("layers")
    layer_policy: LayerPolicy | None = None
    if layers_raw is not None:
        if not isinstance(layers_raw, dict):
            msg = "layers must be a mapping"
            raise ValueError(msg)
        layer_policy = parse_layer_policy(layers_raw)

    return Config(
        processing=_parse_processing(data.get("processing")),
        cycles=_parse_cycles(data.get("cycles")),
        layer_policy=layer_policy,
    )


def load_config(path: Path | None = None, *, project_root: Path | None = None) -> Config:
    """Load configuration from *path*, or ``<project_root>/.archlens/config.yml``.

    A missing default file yields the defaults; a missing explicit *path*
    is an error.
    """
    if path is None:
        path = (project_root or Path.cwd()) / DEFAULT_CONFIG_PATH
        if not path.is_file():
            return Config()
    elif not path.is_file():
        msg = f"config file not found: {path}"
        raise ValueError(msg)

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            msg = f"{path.name}: invalid YAML ({exc})"
            raise ValueError(msg) from exc
    return parse_config(data)
