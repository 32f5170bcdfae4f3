"""
Unit Cell Topology Extraction
=============================

Converts raw, possibly overlapping line segments into a list of unique nodes
and a list of unique edges (node index pairs).

Segments may be given as an array of shape (n, 2, 3) (start and end point
per segment) or as edge coordinate rows of shape (n, 6).

Functions
---------
segment_intersection
    Closest approach parameters of two finite segments.
fix_intersections
    Splits segments at interior intersection points.
extract_topology
    Deduplicated nodes and edges from a list of segments.
"""

import logging

import numpy as np

import ConformalLattice
from ConformalLattice.spatial import SpatialIndex

logger = logging.getLogger(ConformalLattice.__name__)


def as_segments(segments) -> np.ndarray:
    """Bring segment input into the (n, 2, 3) representation."""
    segments = np.asarray(segments, dtype=float)
    if segments.ndim == 2 and segments.shape[1] == 6:
        segments = segments.reshape(-1, 2, 3)
    if segments.size == 0:
        return segments.reshape(0, 2, 3)
    if segments.ndim != 3 or segments.shape[1:] != (2, 3):
        raise ValueError(
            "Segments must be given as an array of shape (n, 2, 3) or (n, 6), "
            f"got {segments.shape}"
        )
    return segments


def segment_intersection(a, b, tol: float):
    """Intersection parameters of two finite segments.

    Computes the points of closest approach of the segments ``a`` and ``b``
    (each a pair of points) and returns their parameters ``(ta, tb)`` in
    [0, 1] if the two points are at most ``tol`` apart. Parallel or
    degenerate segments have no unique intersection and give ``None``.
    """
    p0, p1 = np.asarray(a[0], dtype=float), np.asarray(a[1], dtype=float)
    q0, q1 = np.asarray(b[0], dtype=float), np.asarray(b[1], dtype=float)
    d1 = p1 - p0
    d2 = q1 - q0
    r = p0 - q0
    aa = d1 @ d1
    ee = d2 @ d2
    if aa <= tol**2 or ee <= tol**2:
        return None
    bb = d1 @ d2
    cc = d1 @ r
    ff = d2 @ r
    denom = aa * ee - bb**2
    if denom <= 1e-12 * aa * ee:
        return None

    ta = np.clip((bb * ff - cc * ee) / denom, 0.0, 1.0)
    tb = (bb * ta + ff) / ee
    if tb < 0.0:
        tb = 0.0
        ta = np.clip(-cc / aa, 0.0, 1.0)
    elif tb > 1.0:
        tb = 1.0
        ta = np.clip((bb - cc) / aa, 0.0, 1.0)

    gap = np.linalg.norm((p0 + ta * d1) - (q0 + tb * d2))
    if gap > tol:
        return None
    return float(ta), float(tb)


def _is_interior(segment, t, tol) -> bool:
    length = np.linalg.norm(segment[1] - segment[0])
    return t * length > tol and (1.0 - t) * length > tol


def _split(segment, t):
    point = segment[0] + t * (segment[1] - segment[0])
    return [np.array([segment[0], point]), np.array([point, segment[1]])]


def fix_intersections(segments, tol: float) -> np.ndarray:
    """Split segments at intersections with other segments.

    All pairs of the original segments are visited once. A segment whose
    intersection with another lies more than ``tol`` away from both of its
    endpoints is replaced by its two halves. Each segment is split at most
    once, and the split pieces are not tested again, so a segment crossed by
    several others keeps all but its first crossing.

    Returns
    -------
    np.ndarray (m, 3)
        The untouched segments in input order followed by the split pieces.
    """
    segments = as_segments(segments)
    to_remove = set()
    split_segments = []
    for a in range(len(segments)):
        for b in range(a + 1, len(segments)):
            params = segment_intersection(segments[a], segments[b], tol)
            if params is None:
                continue
            ta, tb = params
            if a not in to_remove and _is_interior(segments[a], ta, tol):
                split_segments.extend(_split(segments[a], ta))
                to_remove.add(a)
            if b not in to_remove and _is_interior(segments[b], tb, tol):
                split_segments.extend(_split(segments[b], tb))
                to_remove.add(b)

    if to_remove:
        logger.debug(f"Split {len(to_remove)} segments at intersections")
    kept = [s for i, s in enumerate(segments) if i not in to_remove]
    return as_segments(np.array(kept + split_segments).reshape(-1, 2, 3))


def extract_topology(segments, tol: float, resolve_intersections=True):
    """Unique nodes and edges of a set of line segments.

    Every segment endpoint is matched against the nodes found so far; a node
    closer than ``tol`` is reused, otherwise the endpoint becomes a new node.
    Each segment then contributes the sorted index pair of its endpoints,
    unless that pair is already known.

    Parameters
    ----------
    segments : array-like (n, 2, 3) or (n, 6)
        Raw segments.
    tol : float
        Distance below which two points are the same node.
    resolve_intersections : bool, default True
        Split segments at their mutual intersections first.

    Returns
    -------
    nodes : np.ndarray (n_nodes, 3)
    node_pairs : list of tuple(int, int)
        Edges as sorted node index pairs, in order of first appearance.
    """
    segments = as_segments(segments)
    if resolve_intersections:
        segments = fix_intersections(segments, tol)

    index = SpatialIndex()
    node_pairs = []
    known_pairs = set()
    for segment in segments:
        node_indices = []
        for point in segment:
            if len(index) > 0:
                ids, distances = index.nearest(point)
                if distances[0] <= tol:
                    node_indices.append(int(ids[0]))
                    continue
            index.insert(point)
            node_indices.append(len(index) - 1)

        i, j = sorted(node_indices)
        if i == j:
            logger.warning(
                f"Dropping segment {segment.tolist()} shorter than tolerance {tol}"
            )
            continue
        if (i, j) not in known_pairs:
            known_pairs.add((i, j))
            node_pairs.append((i, j))

    nodes = index.points
    logger.debug(
        f"Extracted {len(nodes)} nodes and {len(node_pairs)} edges "
        f"from {len(segments)} segments"
    )
    return nodes, node_pairs
