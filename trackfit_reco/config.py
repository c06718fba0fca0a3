from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional, Tuple, Union

import orjson

from trackfit_reco import units
from trackfit_reco.minimizer import available_minimizers
from trackfit_reco.points import Coordinate, Point
from trackfit_reco.track import FitSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingOptions:
    r"""
    Run configuration of the reconstruction pipeline.

    Attributes
    ----------
    collapse_ds : tuple of float
        Clustering tolerance ``(dt, dx, dy, dz)``.
    layer_axis : Coordinate
        Partition axis for seeding.
    layer_depth : float
        Layer depth along ``layer_axis``.
    line_width : float
        Linearity tolerance of a seed.
    seed_size : int
        Number of hits per seed.
    join : bool
        Whether overlapping seeds are joined before fitting.
    fit : FitSettings
        Minimizer settings for track and vertex fits.
    default_time_error : float
        Time resolution of volumes without a specific one.
    max_workers : int or None
        Thread pool size for track fitting; ``None`` fits sequentially.
    """
    collapse_ds: Tuple[float, float, float, float] = (2.0 * units.time, 1.0 * units.length,
                                                      1.0 * units.length, 1.0 * units.length)
    layer_axis: Coordinate = Coordinate.Z
    layer_depth: float = 10.0 * units.length
    line_width: float = 25.0 * units.length
    seed_size: int = 3
    join: bool = True
    fit: FitSettings = field(default_factory=FitSettings)
    default_time_error: float = 1.5 * units.time
    max_workers: Optional[int] = None

    @property
    def collapse_point(self) -> Point:
        return Point(*self.collapse_ds)


def _deep_update(d: Mapping[str, Any], u: Mapping[str, Any]) -> dict:
    r"""
    Recursively merge dictionaries (without side effects).

    Nested dicts are merged; scalars and containers from ``u`` replace those in ``d``.
    """
    out = dict(d)
    for k, v in u.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = _deep_update(out[k], v)
        else:
            out[k] = v
    return out


def _normalize_keys(mapping: Mapping[str, Any]) -> dict:
    return {str(k).replace("-", "_"): v for k, v in mapping.items()}


def _fit_settings(mapping: Mapping[str, Any]) -> FitSettings:
    data = _normalize_keys(mapping)
    known = {f.name for f in dataclasses.fields(FitSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown fit settings: {unknown}")
    if "fixed" in data:
        data["fixed"] = Coordinate.parse(data["fixed"])
    settings = FitSettings(**data)
    if settings.error_def <= 0:
        raise ValueError(f"fit.error_def must be positive, got {settings.error_def}")
    if settings.max_iterations <= 0:
        raise ValueError(f"fit.max_iterations must be positive, got {settings.max_iterations}")
    if settings.strategy not in (0, 1, 2):
        raise ValueError(f"fit.strategy must be 0, 1 or 2, got {settings.strategy}")
    if settings.minimizer.lower() not in available_minimizers():
        raise ValueError(f"fit.minimizer must be one of {list(available_minimizers())}, got {settings.minimizer!r}")
    return settings


def options_from_mapping(mapping: Mapping[str, Any]) -> TrackingOptions:
    r"""
    Build and validate :class:`TrackingOptions` from a plain mapping.

    Keys may use ``-`` or ``_``. Missing keys take their defaults.

    Raises
    ------
    ValueError
        On unknown keys or out-of-range values.
    """
    data = _normalize_keys(mapping)
    known = {f.name for f in dataclasses.fields(TrackingOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown tracking options: {unknown}")

    if "fit" in data:
        if not isinstance(data["fit"], Mapping):
            raise ValueError("'fit' must be a mapping of fit settings")
        data["fit"] = _fit_settings(data["fit"])
    if "layer_axis" in data:
        data["layer_axis"] = Coordinate.parse(data["layer_axis"])
    if "collapse_ds" in data:
        ds = tuple(float(v) for v in data["collapse_ds"])
        if len(ds) != 4 or any(v < 0 for v in ds):
            raise ValueError(f"collapse_ds must be four non-negative numbers, got {data['collapse_ds']!r}")
        data["collapse_ds"] = ds

    options = TrackingOptions(**data)
    if options.layer_depth <= 0:
        raise ValueError(f"layer_depth must be positive, got {options.layer_depth}")
    if options.line_width < 0:
        raise ValueError(f"line_width must be non-negative, got {options.line_width}")
    if int(options.seed_size) != options.seed_size or options.seed_size < 1:
        raise ValueError(f"seed_size must be a positive integer, got {options.seed_size}")
    if options.default_time_error <= 0:
        raise ValueError(f"default_time_error must be positive, got {options.default_time_error}")
    if options.max_workers is not None and options.max_workers < 1:
        raise ValueError(f"max_workers must be >= 1 or null, got {options.max_workers}")
    return options


def load_options(
    path: Union[str, Path],
    overrides: Optional[Mapping[str, Any]] = None,
) -> TrackingOptions:
    r"""
    Load :class:`TrackingOptions` from a JSON file.

    Parameters
    ----------
    path : str or pathlib.Path
        JSON object with any subset of the option keys.
    overrides : mapping, optional
        Recursively merged on top of the file contents.

    Raises
    ------
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    path = Path(path)
    try:
        raw = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse {path}: {e}") from e
    if not isinstance(raw, MutableMapping):
        raise ValueError(f"{path} must hold a JSON object, got {type(raw).__name__}")
    if overrides:
        raw = _deep_update(raw, overrides)
    options = options_from_mapping(raw)
    logger.debug("Loaded tracking options from %s", path)
    return options


def options_to_dict(options: TrackingOptions) -> dict:
    """Plain, JSON-ready view of ``options`` (enums by name)."""
    out = dataclasses.asdict(options)
    out["layer_axis"] = options.layer_axis.name
    out["collapse_ds"] = list(options.collapse_ds)
    out["fit"]["fixed"] = Coordinate.parse(options.fit.fixed).name
    return out


def dump_options(options: TrackingOptions) -> bytes:
    return orjson.dumps(options_to_dict(options), option=orjson.OPT_INDENT_2)
