"""
Unit Cell Representation
========================

This module holds the ``UnitCell`` class, the node/edge topology of the
repeating building block of a lattice, together with the operations that
prepare it for tiling:

normalize
    Translates and scales the nodes into the unit cube [0, 1]^3, optionally
    relative to the extent of a reference point set.
check_validity
    Checks that the cell can be tiled periodically: every axis needs at least
    one node on one of its faces, and optionally every face node needs a
    mirror node on the opposite face.
format_topology
    Assigns each node the neighbouring cell that owns it (its boundary path)
    and removes the edges that belong to a neighbouring cell, so that tiled
    cells share nodes and struts exactly once.

All operations take an explicit tolerance ``tol`` below which two points, or
a point and a plane, are treated as coincident.

Examples
--------
>>> import numpy as np
>>> from ConformalLattice.unit_cell import UnitCell
>>> from ConformalLattice.preset_cells import preset_segments
>>> cell = UnitCell.from_segments(preset_segments("grid"))
>>> cell
{'num_nodes': 8, 'num_edges': 3, 'indexed': True}
"""

import copy
import logging
from enum import Enum
from typing import Dict, List, NamedTuple, Set, Tuple

import numpy as np
import numpy.typing as npt

import ConformalLattice
from ConformalLattice.spatial import SpatialIndex
from ConformalLattice.topology import extract_topology

logger = logging.getLogger(ConformalLattice.__name__)

#: Default distance below which points and planes are considered coincident.
DEFAULT_TOLERANCE = 1e-6

# membership bits of the positive boundary planes x=1, y=1, z=1
FACE_X = 1
FACE_Y = 2
FACE_Z = 4


class CellValidity(Enum):
    """Outcome of :meth:`UnitCell.check_validity`."""

    INVALID_NO_MIRROR = -1
    INVALID_NO_FACE_NODE = 0
    VALID = 1


class BoundaryPath(NamedTuple):
    """Owner of a node in a tiled lattice.

    ``di``, ``dj`` and ``dk`` give the offset of the neighbouring cell that
    owns the node, ``local_index`` is the index of the node in that cell.
    """

    di: int
    dj: int
    dk: int
    local_index: int


class DegenerateInputError(ValueError):
    """Raised when a unit cell has no extent along one of the axes."""


class InvalidUnitCellError(ValueError):
    """Raised when a unit cell cannot be tiled periodically."""

    def __init__(self, validity: CellValidity):
        self.validity = validity
        super().__init__(f"Unit cell is not valid for tiling: {validity.name}")


def boundary_face_mask(node, tol: float = DEFAULT_TOLERANCE) -> int:
    """Bitmask of the positive boundary planes (x=1, y=1, z=1) ``node`` is on."""
    on_face = np.abs(np.asarray(node, dtype=float) - 1.0) < tol
    return (
        (FACE_X if on_face[0] else 0)
        | (FACE_Y if on_face[1] else 0)
        | (FACE_Z if on_face[2] else 0)
    )


def owner_offset(face_mask: int) -> Tuple[int, int, int]:
    """Offset of the neighbouring cell owning a node with the given face mask.

    The cases are matched in the order the boundary planes take precedence:
    the z=1 plane first (corner, the two edges, then the face), then the
    x=1 plane (edge, face), then the y=1 plane. Nodes on none of them belong
    to the cell itself.
    """
    match face_mask:
        case 0b111:  # +X +Y +Z corner
            return (1, 1, 1)
        case 0b101:  # +X +Z edge
            return (1, 0, 1)
        case 0b110:  # +Y +Z edge
            return (0, 1, 1)
        case 0b100:  # +Z face
            return (0, 0, 1)
        case 0b011:  # +X +Y edge
            return (1, 1, 0)
        case 0b001:  # +X face
            return (1, 0, 0)
        case 0b010:  # +Y face
            return (0, 1, 0)
        case 0b000:
            return (0, 0, 0)
    raise ValueError(f"Invalid boundary face mask {face_mask}")


class UnitCell:
    """Node and edge topology of a lattice unit cell.

    Parameters
    ----------
    nodes : array-like (n, 3), optional
        Unique node coordinates.
    node_pairs : list of tuple(int, int), optional
        Edges as node index pairs. Pairs are stored sorted.
    node_paths : list of BoundaryPath, optional
        Boundary paths parallel to ``nodes``. Empty until
        :meth:`format_topology` has been called.
    """

    nodes: npt.NDArray[np.float64]
    node_pairs: List[Tuple[int, int]]
    node_paths: List[BoundaryPath]

    def __init__(self, nodes=None, node_pairs=None, node_paths=None):
        if nodes is None:
            nodes = np.zeros((0, 3))
        self.nodes = np.array(nodes, dtype=float).reshape(-1, 3)
        self.node_pairs = [
            tuple(sorted((int(i), int(j)))) for i, j in node_pairs or []
        ]
        self.node_paths = [BoundaryPath(*p) for p in node_paths or []]
        self.verify_node_pairs()

    @classmethod
    def from_segments(
        cls,
        segments,
        tol: float = DEFAULT_TOLERANCE,
        normalize: bool = True,
        reference_points=None,
        index_boundaries: bool = True,
        check_mirror: bool = False,
        allow_invalid: bool = False,
        resolve_intersections: bool = True,
    ) -> "UnitCell":
        """Build a unit cell from raw line segments.

        Extracts the topology, then normalizes, validates and indexes it.
        Validation only runs on normalized cells; an invalid cell raises
        :class:`InvalidUnitCellError` unless ``allow_invalid`` is set, in
        which case a warning is logged and the cell is indexed anyway.

        Parameters
        ----------
        segments : array-like (n, 2, 3) or (n, 6)
            Raw line segments describing the cell.
        tol : float
            Coincidence tolerance.
        normalize : bool, default True
            Scale the cell into the unit cube.
        reference_points : array-like (m, 3), optional
            Normalize relative to the bounding box of these points instead
            of the cell's own nodes.
        index_boundaries : bool, default True
            Compute boundary paths and prune boundary edges.
        check_mirror : bool, default False
            Also require mirror nodes on opposite faces.
        allow_invalid : bool, default False
            Continue with an invalid cell instead of raising.
        resolve_intersections : bool, default True
            Split segments at their intersections before extraction.
        """
        nodes, node_pairs = extract_topology(
            segments, tol, resolve_intersections=resolve_intersections
        )
        cell = cls(nodes, node_pairs)
        if not normalize:
            return cell

        cell.normalize(reference_points=reference_points, tol=tol)
        validity = cell.check_validity(tol=tol, check_mirror=check_mirror)
        if validity is not CellValidity.VALID:
            if not allow_invalid:
                raise InvalidUnitCellError(validity)
            logger.warning(f"Continuing with invalid unit cell ({validity.name})")
        if index_boundaries:
            cell.format_topology(tol=tol)
        return cell

    def __repr__(self) -> str:
        repr_dict = {
            "num_nodes": self.num_nodes,
            "num_edges": self.num_edges,
            "indexed": self.is_indexed,
        }
        return repr_dict.__repr__()

    def copy(self) -> "UnitCell":
        return copy.deepcopy(self)

    @property
    def num_nodes(self) -> int:
        return self.nodes.shape[0]

    @property
    def num_edges(self) -> int:
        return len(self.node_pairs)

    @property
    def is_indexed(self) -> bool:
        return len(self.node_paths) == self.num_nodes and self.num_nodes > 0

    @property
    def edge_adjacency(self) -> npt.NDArray[np.int_]:
        return np.array(self.node_pairs, dtype=np.int_).reshape(-1, 2)

    @property
    def edge_coordinates(self) -> npt.NDArray[np.float64]:
        """Edges as (n, 6) rows of start and end coordinates."""
        return self.nodes[self.edge_adjacency].reshape(-1, 6)

    def verify_node_pairs(self) -> None:
        pairs = self.edge_adjacency
        if len(pairs) == 0:
            return
        assert pairs.min() >= 0, "Edge references a negative node index"
        assert pairs.max() < self.num_nodes, "Edge references a missing node"
        assert len(set(self.node_pairs)) == len(self.node_pairs), "Duplicate edge"

    def normalize(self, reference_points=None, tol: float = DEFAULT_TOLERANCE):
        """Scale and translate the nodes into the unit cube.

        The bounding box of the nodes (or of ``reference_points``) is moved
        to the origin and every axis is scaled independently to unit length.
        Coordinates within ``tol`` of 0 or 1 are snapped onto the face.

        Raises
        ------
        DegenerateInputError
            If the bounding box is flat along one of the axes.
        """
        if reference_points is None:
            box_points = self.nodes
        else:
            box_points = np.asarray(reference_points, dtype=float).reshape(-1, 3)
        if box_points.shape[0] == 0:
            raise DegenerateInputError("Cannot normalize an empty point set.")

        box_min = box_points.min(axis=0)
        extent = box_points.max(axis=0) - box_min
        flat_axes = np.flatnonzero(extent <= tol)
        if len(flat_axes) > 0:
            raise DegenerateInputError(
                f"Unit cell has no extent along axes {flat_axes.tolist()}, "
                f"bounding box size {extent.tolist()}"
            )

        nodes = (self.nodes - box_min) / extent
        nodes[np.abs(nodes) < tol] = 0.0
        nodes[np.abs(nodes - 1.0) < tol] = 1.0
        self.nodes = nodes
        logger.debug(f"Normalized unit cell with bounding box size {extent.tolist()}")

    def check_validity(
        self, tol: float = DEFAULT_TOLERANCE, check_mirror: bool = False
    ) -> CellValidity:
        """Check whether the normalized cell can be tiled periodically.

        Every axis needs at least one node on one of its two faces. With
        ``check_mirror``, every node on a face also needs a node at the
        mirrored position on the opposite face.
        """
        on_min = np.abs(self.nodes) < tol
        on_max = np.abs(self.nodes - 1.0) < tol
        face_check = np.any(on_min | on_max, axis=0)
        if not np.all(face_check):
            logger.debug(f"No face nodes on axes {np.flatnonzero(~face_check)}")
            return CellValidity.INVALID_NO_FACE_NODE

        if check_mirror:
            mirrors = []
            for node, node_min, node_max in zip(self.nodes, on_min, on_max):
                for axis in np.flatnonzero(node_min | node_max):
                    mirror = node.copy()
                    mirror[axis] = 1.0 if node_min[axis] else 0.0
                    mirrors.append(mirror)
            if mirrors:
                _, distances = SpatialIndex(self.nodes).nearest(mirrors)
                if np.any(distances > tol):
                    logger.debug(
                        f"{np.count_nonzero(distances > tol)} face nodes "
                        "without mirror node"
                    )
                    return CellValidity.INVALID_NO_MIRROR

        return CellValidity.VALID

    @property
    def is_valid(self) -> bool:
        return self.check_validity() is CellValidity.VALID

    def node_types(self, tol: float = DEFAULT_TOLERANCE) -> Dict[str, Set[int]]:
        """Classify nodes by the number of coordinates on the cell boundary.

        Returns a dictionary with sets of
            - corner nodes (3 coordinates on the boundary)
            - edge nodes (2 coordinates on the boundary)
            - face nodes (1 coordinate on the boundary)
            - inner nodes
        """
        coords_on_bnds = np.sum(np.abs(self.nodes) < tol, axis=1) + np.sum(
            np.abs(self.nodes - 1.0) < tol, axis=1
        )
        return {
            "corner_nodes": set(np.flatnonzero(coords_on_bnds == 3).tolist()),
            "edge_nodes": set(np.flatnonzero(coords_on_bnds == 2).tolist()),
            "face_nodes": set(np.flatnonzero(coords_on_bnds == 1).tolist()),
            "inner_nodes": set(np.flatnonzero(coords_on_bnds == 0).tolist()),
        }

    def nodal_connectivity(self) -> npt.NDArray[np.int_]:
        """Number of edges incident to each node."""
        connectivity = np.zeros(self.num_nodes, dtype=np.int_)
        if self.num_edges > 0:
            nums, counts = np.unique(self.edge_adjacency, return_counts=True)
            connectivity[nums] = counts
        return connectivity

    def face_masks(self, tol: float = DEFAULT_TOLERANCE) -> List[int]:
        return [boundary_face_mask(node, tol) for node in self.nodes]

    def format_topology(self, tol: float = DEFAULT_TOLERANCE) -> None:
        """Assign boundary paths and remove edges owned by neighbouring cells.

        Expects a normalized, valid cell. Nodes on the planes x=1, y=1 or
        z=1 belong to the neighbouring cell given by :func:`owner_offset`;
        their local index is the node found at the position with the
        flagged coordinates set to 0. Edges with both endpoints on the same
        of these planes are removed, the neighbour provides them.
        """
        if self.node_paths:
            raise RuntimeError("Unit cell topology has already been formatted.")

        masks = self.face_masks(tol)
        index = SpatialIndex(self.nodes)
        node_paths = []
        for i, (node, mask) in enumerate(zip(self.nodes, masks)):
            offset = owner_offset(mask)
            if mask == 0:
                node_paths.append(BoundaryPath(*offset, i))
                continue
            reflected = np.where(np.array(offset) == 1, 0.0, node)
            ids, distances = index.nearest(reflected)
            if distances[0] > tol:
                logger.warning(
                    f"Node {node.tolist()} has no periodic partner at "
                    f"{reflected.tolist()}, using closest node {int(ids[0])}"
                )
            node_paths.append(BoundaryPath(*offset, int(ids[0])))
        self.node_paths = node_paths

        kept_pairs = [
            (i, j) for i, j in self.node_pairs if (masks[i] & masks[j]) == 0
        ]
        logger.debug(
            f"Removed {self.num_edges - len(kept_pairs)} boundary edges, "
            f"{len(kept_pairs)} remaining"
        )
        self.node_pairs = kept_pairs
        self.verify_node_pairs()
