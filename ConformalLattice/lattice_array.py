"""
Conformal Lattice Arrays
========================

Generates the world-space points of a lattice by tiling reference points of
one cell (by default the eight cube corners, commonly the nodes of a
normalized unit cell) over an integer grid. Every grid cell is placed
between two bounding surfaces: its points are found by evaluating both
surfaces at the normalized in-plane grid coordinates and interpolating
linearly between them with the normalized out-of-plane coordinate.

Cells that would reach beyond the grid extent are rejected as a whole and
are absent from the resulting :class:`LatticeTree`.

Examples
--------
>>> from ConformalLattice.lattice_array import generate_lattice_array
>>> tree = generate_lattice_array([2, 1, 1])
>>> sorted(tree.keys())
[(0, 0, 0), (1, 0, 0)]
>>> tree[(1, 0, 0)].shape
(8, 3)
"""

import logging

import numpy as np
import torch

import ConformalLattice
from ConformalLattice.torch_spline import (
    TorchSpline,
    default_bounding_surfaces,
    reparametrize_to_unit_domain,
)
from ConformalLattice.unit_cell import UnitCell
from ConformalLattice.utils import make_corner_nodes

logger = logging.getLogger(ConformalLattice.__name__)


class LatticeTree(dict):
    """Mapping from grid cell index (u, v, w) to the cell's world points.

    The points of a cell are stored as an array of shape (n_offsets, 3) in
    the order of the reference offsets. Rejected cells have no entry.
    """

    def __init__(self, *args, extent=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.extent = extent

    def paths(self) -> list:
        return sorted(self.keys())

    def flat_points(self) -> np.ndarray:
        """All points as one (n, 3) array, cells in sorted index order."""
        if len(self) == 0:
            return np.zeros((0, 3))
        return np.concatenate([self[path] for path in self.paths()], axis=0)


def check_extent(extent):
    if isinstance(extent, int):
        extent = [extent, extent, extent]
    if len(extent) != 3:
        raise ValueError("Grid extent must be an integer or a list of 3 integers")
    extent = [int(n) for n in extent]
    if min(extent) < 0:
        raise ValueError(f"Grid extent must not be negative, got {extent}")
    return extent


class LatticeArrayGenerator:
    """Lattice point generator between two bounding surfaces.

    Parameters
    ----------
    surfaces : tuple of two splinepy splines, optional
        Lower and upper bounding surface. Both are reparametrized to the
        unit square. Defaults to the flat faces z=0 and z=1 of the unit cube.
    device : str, default "cpu"
        Torch device used for surface evaluation.
    dtype : torch.dtype, default torch.float64
    """

    def __init__(self, surfaces=None, device="cpu", dtype=torch.float64):
        if surfaces is None:
            surfaces = default_bounding_surfaces()
        if len(surfaces) != 2:
            raise ValueError("Exactly two bounding surfaces are required.")
        self.device = device
        self.dtype = dtype
        self.surfaces = [
            TorchSpline(reparametrize_to_unit_domain(s), device=device, dtype=dtype)
            for s in surfaces
        ]

    def cell_indices(self, extent) -> torch.Tensor:
        """All grid cell indices (u, v, w), u varying slowest."""
        axes = [torch.arange(n + 1, device=self.device) for n in check_extent(extent)]
        grid = torch.meshgrid(*axes, indexing="ij")
        return torch.stack(grid, dim=-1).reshape(-1, 3)

    def evaluate(self, uvw: torch.Tensor) -> torch.Tensor:
        """World points for normalized grid coordinates of shape (n, 3)."""
        lower = self.surfaces[0](uvw[:, :2])
        upper = self.surfaces[1](uvw[:, :2])
        return lower + (upper - lower) * uvw[:, 2:3]

    def __call__(self, extent, reference_offsets=None) -> LatticeTree:
        """Generate the lattice tree for a grid extent (Nu, Nv, Nw).

        Parameters
        ----------
        extent : int or list of 3 ints
            Number of cells along u, v and w.
        reference_offsets : array-like (n, 3) or UnitCell, optional
            Points of one cell in cell coordinates. Defaults to the eight
            corners of the unit cube.
        """
        extent = check_extent(extent)
        if reference_offsets is None:
            reference_offsets = make_corner_nodes()
        elif isinstance(reference_offsets, UnitCell):
            reference_offsets = reference_offsets.nodes
        offsets = torch.as_tensor(
            np.asarray(reference_offsets, dtype=float).reshape(-1, 3),
            dtype=self.dtype,
            device=self.device,
        )
        if offsets.shape[0] == 0:
            raise ValueError("At least one reference offset is required.")

        n = torch.tensor(extent, dtype=self.dtype, device=self.device)
        cells = self.cell_indices(extent)
        global_uvw = cells.to(self.dtype)[:, None, :] + offsets[None, :, :]

        # a cell is kept only if all of its points are inside the grid
        inside = (global_uvw <= n).reshape(cells.shape[0], -1).all(dim=1)
        kept_cells = cells[inside]
        kept_uvw = global_uvw[inside].reshape(-1, 3)

        tree = LatticeTree(extent=tuple(extent))
        if kept_cells.shape[0] == 0:
            logger.warning(f"No cell fits into the grid extent {extent}")
            return tree

        safe_n = torch.where(n > 0, n, torch.ones_like(n))
        normalized = torch.where(n > 0, kept_uvw / safe_n, torch.zeros_like(kept_uvw))
        with torch.no_grad():
            points = self.evaluate(normalized)
        points = points.reshape(kept_cells.shape[0], offsets.shape[0], 3)
        points = points.detach().cpu().numpy()

        for cell, cell_points in zip(kept_cells.cpu().tolist(), points):
            tree[tuple(cell)] = cell_points

        logger.debug(
            f"Generated {len(tree)} cells for extent {extent}, "
            f"rejected {cells.shape[0] - len(tree)}"
        )
        return tree


def generate_lattice_array(
    extent,
    reference_offsets=None,
    surfaces=None,
    device="cpu",
    dtype=torch.float64,
) -> LatticeTree:
    """Generate a conformal lattice tree, see :class:`LatticeArrayGenerator`."""
    generator = LatticeArrayGenerator(surfaces=surfaces, device=device, dtype=dtype)
    return generator(extent, reference_offsets=reference_offsets)
