__all__ = [
    "units",
    "Coordinate", "Point", "Event",
    "t_sort", "coordinate_sort", "mean", "within_dr",
    "point_line_distance", "binary_find_first",
    "BoxVolume", "BoxGeometry", "Geometry", "find_center",
    "clusters", "collapse", "time_normalize", "find_centers",
    "EventPartition", "partition",
    "fast_line_check", "seed",
    "seeds_compatible", "join", "join_all",
    "uniform", "propagate_average", "propagate", "chi_squared_p_value",
    "FitParameter", "Minimizer", "MinimizerResult",
    "MinuitMinimizer", "ScipyMinimizer", "get_minimizer",
    "FitSettings", "Track", "fit_seeds",
    "Vertex",
    "event_from_frame", "events_from_frame", "tracks_to_frame", "vertex_to_frame",
    "TrackingOptions", "load_options", "options_from_mapping",
    "Reconstruction", "reconstruct", "reconstruct_events", "setup_logging",
]

from . import units

# Points & geometry
from .points import (
    Coordinate,
    Point,
    Event,
    t_sort,
    coordinate_sort,
    mean,
    within_dr,
    point_line_distance,
    binary_find_first,
)
from .volumes import BoxVolume, BoxGeometry, Geometry, find_center

# Clustering, layering & seeding
from .clustering import clusters, collapse, time_normalize, find_centers
from .partition import EventPartition, partition
from .seeding import fast_line_check, seed
from .joining import seeds_compatible, join, join_all

# Statistics & fitting
from .stat import uniform, propagate_average, propagate, chi_squared_p_value
from .minimizer import (
    FitParameter,
    Minimizer,
    MinimizerResult,
    MinuitMinimizer,
    ScipyMinimizer,
    get_minimizer,
)
from .track import FitSettings, Track, fit_seeds
from .vertex import Vertex

# DataFrames, configuration & driver
from .frame import event_from_frame, events_from_frame, tracks_to_frame, vertex_to_frame
from .config import TrackingOptions, load_options, options_from_mapping
from .pipeline import Reconstruction, reconstruct, reconstruct_events, setup_logging
