"""
Lattice Struts
==============

Builds the strut (line) mesh of a tiled lattice from an indexed unit cell
and a lattice tree whose reference offsets were the unit cell nodes.

Every node of every cell is identified by the cell that owns it, given by
its boundary path: node ``i`` of cell ``(u, v, w)`` with path
``(di, dj, dk, local_index)`` is the node ``local_index`` of cell
``(u + di, v + dj, w + dk)``. Nodes shared at cell seams therefore map to a
single vertex, and since boundary struts were removed from the unit cell,
every strut is emitted by exactly one cell. The cells beyond the far grid
faces are visited as well, so the struts on those faces are kept.
"""

import logging
from itertools import product

import gustaf as gus
import numpy as np

import ConformalLattice
from ConformalLattice.unit_cell import UnitCell

logger = logging.getLogger(ConformalLattice.__name__)


class LatticeStruts:
    """Line mesh with vertices (n, 3) and lines as vertex index pairs (m, 2)."""

    def __init__(self, vertices, lines):
        self.vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        self.lines = np.asarray(lines, dtype=np.int_).reshape(-1, 2)
        if len(self.lines) > 0:
            assert self.lines.max() < len(self.vertices), "Line index out of range"

    def __repr__(self) -> str:
        repr_dict = {"num_vertices": self.num_vertices, "num_lines": self.num_lines}
        return repr_dict.__repr__()

    @property
    def num_vertices(self) -> int:
        return self.vertices.shape[0]

    @property
    def num_lines(self) -> int:
        return self.lines.shape[0]

    def line_coordinates(self) -> np.ndarray:
        return self.vertices[self.lines]

    def to_gus(self):
        return gus.Edges(vertices=self.vertices, edges=self.lines)

    def show(self, **kwargs):
        kwargs.setdefault("axes", 1)
        gus.show(self.to_gus(), **kwargs)


def create_struts(node_pairs, points) -> LatticeStruts:
    """Struts of a single cell, connecting its points by the node pairs."""
    pairs = np.asarray(node_pairs, dtype=np.int_).reshape(-1, 2)
    if len(pairs) > 0:
        pairs = np.unique(np.sort(pairs, axis=1), axis=0)
    return LatticeStruts(points, pairs)


def _grid_extent(tree):
    extent = getattr(tree, "extent", None)
    if extent is None:
        keys = np.array(list(tree.keys()), dtype=int).reshape(-1, 3)
        extent = tuple((keys.max(axis=0) + 1).tolist())
    return extent


def map_unit_cell(cell: UnitCell, tree) -> LatticeStruts:
    """Seam-free strut mesh of a unit cell tiled over a lattice tree.

    Parameters
    ----------
    cell : UnitCell
        Normalized cell with boundary paths (see
        :meth:`UnitCell.format_topology`).
    tree : LatticeTree or dict
        Cell points generated with the cell nodes as reference offsets.

    Returns
    -------
    LatticeStruts
    """
    if not cell.is_indexed:
        raise ValueError("Unit cell has no boundary paths, call format_topology.")

    vertex_ids = {}
    vertices = []
    for (u, v, w), points in sorted(tree.items()):
        if len(points) != cell.num_nodes:
            raise ValueError(
                f"Cell {(u, v, w)} has {len(points)} points, "
                f"but the unit cell has {cell.num_nodes} nodes"
            )
        for point, path in zip(points, cell.node_paths):
            key = (u + path.di, v + path.dj, w + path.dk, path.local_index)
            if key not in vertex_ids:
                vertex_ids[key] = len(vertices)
                vertices.append(point)

    def node_key(u, v, w, node):
        path = cell.node_paths[node]
        return (u + path.di, v + path.dj, w + path.dk, path.local_index)

    lines = []
    known_lines = set()
    nu, nv, nw = _grid_extent(tree)
    for u, v, w in product(range(nu + 1), range(nv + 1), range(nw + 1)):
        for a, b in cell.node_pairs:
            ka = node_key(u, v, w, a)
            kb = node_key(u, v, w, b)
            if ka not in vertex_ids or kb not in vertex_ids:
                continue
            line = tuple(sorted((vertex_ids[ka], vertex_ids[kb])))
            if line not in known_lines:
                known_lines.add(line)
                lines.append(line)

    logger.debug(f"Mapped unit cell to {len(vertices)} vertices, {len(lines)} struts")
    return LatticeStruts(vertices, lines)
