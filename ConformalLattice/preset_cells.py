"""
Preset Unit Cells
=================

A small library of common strut-based unit cells, given as raw line segments
in the unit cube. They are meant as input for
:meth:`ConformalLattice.unit_cell.UnitCell.from_segments`; some of them
contain crossing segments that are split during topology extraction.

Available Unit Cells
--------------------

grid
    The twelve edges of the cube.
x
    Struts from the eight corners to the cell center.
star
    The ``x`` cell plus struts from the center to the six face centers.
cross
    The ``grid`` cell plus struts from the center to the six face centers.
octet
    Crossing face diagonals plus the octahedron between the face centers.
"""

from enum import Enum
from itertools import combinations

import numpy as np

from ConformalLattice.utils import make_corner_nodes

_CENTER = np.array([0.5, 0.5, 0.5])


class PresetCells(Enum):
    grid = "grid"
    x = "x"
    star = "star"
    cross = "cross"
    octet = "octet"


def _face_centers() -> np.ndarray:
    centers = []
    for axis in range(3):
        for value in (0.0, 1.0):
            center = _CENTER.copy()
            center[axis] = value
            centers.append(center)
    return np.array(centers)


def _cube_edges():
    corners = make_corner_nodes()
    # corners differing in exactly one coordinate
    return [
        (a, b)
        for a, b in combinations(corners, 2)
        if np.count_nonzero(a != b) == 1
    ]


def _corner_struts():
    return [(corner, _CENTER) for corner in make_corner_nodes()]


def _face_struts():
    return [(center, _CENTER) for center in _face_centers()]


def _face_diagonals():
    corners = make_corner_nodes()
    diagonals = []
    for axis in range(3):
        for value in (0.0, 1.0):
            on_face = corners[corners[:, axis] == value]
            for a, b in combinations(on_face, 2):
                if np.count_nonzero(a != b) == 2:
                    diagonals.append((a, b))
    return diagonals


def _octahedron_edges():
    centers = _face_centers()
    # face centers of neighbouring (non-opposite) faces
    return [
        (a, b)
        for a, b in combinations(centers, 2)
        if not np.isclose(np.linalg.norm(a - b), 1.0)
    ]


def preset_segments(name) -> np.ndarray:
    """Segments of a preset unit cell as an array of shape (n, 2, 3)."""
    try:
        cell = PresetCells(name.value if isinstance(name, PresetCells) else name)
    except ValueError:
        raise ValueError(
            f"Unknown unit cell '{name}', "
            f"available: {[c.value for c in PresetCells]}"
        ) from None

    match cell:
        case PresetCells.grid:
            segments = _cube_edges()
        case PresetCells.x:
            segments = _corner_struts()
        case PresetCells.star:
            segments = _corner_struts() + _face_struts()
        case PresetCells.cross:
            segments = _cube_edges() + _face_struts()
        case PresetCells.octet:
            segments = _face_diagonals() + _octahedron_edges()
    return np.array(segments, dtype=float).reshape(-1, 2, 3)
