from __future__ import annotations

from typing import Dict, Hashable, Sequence, Tuple

import numpy as np
import pandas as pd

from trackfit_reco.points import Event, as_points
from trackfit_reco.track import PARAMETER_NAMES, Track
from trackfit_reco.vertex import Parameter, Vertex

POINT_COLUMNS: Tuple[str, str, str, str] = ("t", "x", "y", "z")


def _require(df: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"DataFrame is missing columns {missing}; has {list(df.columns)}")


def event_from_frame(df: pd.DataFrame, columns: Sequence[str] = POINT_COLUMNS) -> Event:
    r"""
    Read hits from ``df``.

    Parameters
    ----------
    df : pandas.DataFrame
    columns : sequence of str, optional
        Names of the ``t, x, y, z`` columns, in that order.

    Raises
    ------
    KeyError
        If a column is missing.
    """
    _require(df, columns)
    return as_points(df.loc[:, list(columns)].to_numpy(dtype=np.float64))


def events_from_frame(
    df: pd.DataFrame,
    by: str = "event_id",
    columns: Sequence[str] = POINT_COLUMNS,
) -> Dict[Hashable, Event]:
    """Split ``df`` on ``by`` into one event per group, in first-appearance order."""
    _require(df, [by, *columns])
    return {key: event_from_frame(group, columns) for key, group in df.groupby(by, sort=False)}


def tracks_to_frame(tracks: Sequence[Track]) -> pd.DataFrame:
    r"""
    One row per track: parameter values and errors, fit statistics and size.

    Columns are ``t0, x0, y0, z0, vx, vy, vz``, their ``*_error``
    counterparts, then ``chi2``, ``dof``, ``chi2_per_dof``, ``p_value``,
    ``beta``, ``n_hits`` and ``converged``.
    """
    names = [n.lower() for n in PARAMETER_NAMES]
    rows = []
    for track in tracks:
        row = {n: p.value for n, p in zip(names, track.parameters)}
        row.update({f"{n}_error": p.error for n, p in zip(names, track.parameters)})
        row.update(
            chi2=track.chi_squared(),
            dof=track.degrees_of_freedom(),
            chi2_per_dof=track.chi_squared_per_dof(),
            p_value=track.p_value(),
            beta=track.beta,
            n_hits=len(track),
            converged=track.converged,
        )
        rows.append(row)
    columns = names + [f"{n}_error" for n in names] + [
        "chi2", "dof", "chi2_per_dof", "p_value", "beta", "n_hits", "converged"]
    return pd.DataFrame(rows, columns=columns)


def vertex_to_frame(vertex: Vertex) -> pd.DataFrame:
    """Single-row frame with the vertex point, errors and fit statistics."""
    row = {p.name.lower(): vertex.value(p) for p in Parameter}
    row.update({f"{p.name.lower()}_error": vertex.error(p) for p in Parameter})
    row.update(
        chi2=vertex.chi_squared(),
        dof=vertex.degrees_of_freedom(),
        p_value=vertex.p_value(),
        n_tracks=vertex.size,
        diverged=vertex.fit_diverged(),
    )
    return pd.DataFrame([row])
