import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from trackfit_reco.points import Point
from trackfit_reco.volumes import BoxGeometry, BoxVolume


@pytest.fixture
def geometry_for():
    """Factory: one box per distinct hit position, centered on the hit."""
    def build(points, widths=(1.0, 1.0, 1.0), time_resolution=1.5):
        boxes = {}
        seen = set()
        for p in points:
            key = (p.x, p.y, p.z)
            if key in seen:
                continue
            seen.add(key)
            boxes[f"V{len(boxes)}"] = BoxVolume.from_center(key, widths)
        return BoxGeometry(boxes, default_time_resolution=time_resolution)
    return build


@pytest.fixture
def line_event():
    """Four hits on a straight line moving along z at 10 cm/ns."""
    return [
        Point(0.0, 0.0, 0.0, 0.0),
        Point(1.0, 0.0, 0.0, 10.0),
        Point(2.0, 0.0, 0.0, 20.0),
        Point(3.0, 0.0, 0.0, 30.0),
    ]
