"""
Spatial Index
=============

Thin wrapper around the ``napf`` k-d tree providing the two queries the
lattice code needs: the nearest indexed point to a query point, and the
number of indexed points inside a fixed radius (the valence of a point in a
lattice point cloud).

The tree is rebuilt lazily after insertions, so an index can be filled one
point at a time while it is being queried, as done during node deduplication.
Instances are meant to live for one batch of queries only.

Examples
--------
>>> import numpy as np
>>> from ConformalLattice.spatial import SpatialIndex
>>> index = SpatialIndex(np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0]]))
>>> index.closest_index([0.9, 0.1, 0.0])
1
"""

import logging

import napf
import numpy as np

import ConformalLattice

logger = logging.getLogger(ConformalLattice.__name__)


class SpatialIndex:
    """Nearest point and fixed-radius queries over a 3D point set.

    Parameters
    ----------
    points : array-like (n, 3), optional
        Initial points. Their ids are their row numbers.
    """

    def __init__(self, points=None):
        self._points = []
        self._ids = []
        self._tree = None
        if points is not None:
            for i, point in enumerate(np.asarray(points, dtype=np.float64)):
                self.insert(point, i)

    def __len__(self):
        return len(self._points)

    @property
    def points(self) -> np.ndarray:
        return np.asarray(self._points, dtype=np.float64).reshape(-1, 3)

    def insert(self, point, id=None):
        """Add a point. ``id`` defaults to the insertion position."""
        point = np.asarray(point, dtype=np.float64).reshape(3)
        self._points.append(point)
        self._ids.append(len(self._ids) if id is None else id)
        self._tree = None

    def _get_tree(self):
        if len(self._points) == 0:
            raise ValueError("Spatial index is empty.")
        if self._tree is None:
            self._tree = napf.KDT(
                tree_data=np.ascontiguousarray(self.points), metric=2
            )
        return self._tree

    def _knn(self, queries: np.ndarray, kneighbors: int):
        kneighbors = min(kneighbors, len(self))
        _, rows = self._get_tree().knn_search(
            queries=queries, kneighbors=kneighbors, nthread=1
        )
        rows = np.asarray(rows, dtype=np.int64).reshape(len(queries), kneighbors)
        # euclidean distances, independent of the tree metric
        distances = np.linalg.norm(self.points[rows] - queries[:, None, :], axis=-1)
        return rows, distances

    def nearest(self, queries):
        """Nearest indexed point for every query point.

        Returns
        -------
        ids : np.ndarray (n,)
            Ids of the nearest points. Exact ties are resolved by the tree.
        distances : np.ndarray (n,)
            Euclidean distance to the nearest point.
        """
        queries = np.ascontiguousarray(
            np.asarray(queries, dtype=np.float64).reshape(-1, 3)
        )
        rows, distances = self._knn(queries, 1)
        ids = np.asarray(self._ids)[rows[:, 0]]
        return ids, distances[:, 0]

    def closest_index(self, point) -> int:
        ids, _ = self.nearest(point)
        return int(ids[0])

    def neighbors(self, point, radius: float) -> list:
        """Ids of all indexed points within ``radius`` of ``point``."""
        query = np.ascontiguousarray(np.asarray(point, dtype=np.float64).reshape(1, 3))
        k = min(8, len(self))
        while True:
            rows, distances = self._knn(query, k)
            if k == len(self) or distances[0, -1] > radius:
                break
            k = min(2 * k, len(self))
        ids = np.asarray(self._ids)
        return [ids[r] for r, d in zip(rows[0], distances[0]) if d <= radius]

    def valence(self, radius: float, queries=None) -> np.ndarray:
        """Number of indexed points within ``radius`` of each query point.

        Queries default to the indexed points themselves, in which case every
        point counts itself.
        """
        if queries is None:
            queries = self.points
        queries = np.ascontiguousarray(
            np.asarray(queries, dtype=np.float64).reshape(-1, 3)
        )
        counts = np.zeros(len(queries), dtype=np.int64)
        pending = np.arange(len(queries))
        k = min(8, len(self))
        while len(pending) > 0:
            _, distances = self._knn(queries[pending], k)
            inside = distances <= radius
            counts[pending] = inside.sum(axis=1)
            if k == len(self):
                break
            # only queries whose k-th neighbour is still inside need more
            pending = pending[inside[:, -1]]
            k = min(2 * k, len(self))
        logger.debug(f"Computed valence of {len(queries)} points, radius {radius}")
        return counts
