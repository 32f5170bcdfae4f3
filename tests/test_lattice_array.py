from itertools import product

import numpy as np
import pytest
import splinepy
import torch

from ConformalLattice.lattice_array import (
    LatticeArrayGenerator,
    check_extent,
    generate_lattice_array,
)
from ConformalLattice.preset_cells import preset_segments
from ConformalLattice.spatial import SpatialIndex
from ConformalLattice.torch_spline import surface_from_corners
from ConformalLattice.unit_cell import UnitCell
from ConformalLattice.utils import make_corner_nodes


def box_surfaces(size_x, size_y, height):
    lower = surface_from_corners(
        [0, 0, 0], [size_x, 0, 0], [size_x, size_y, 0], [0, size_y, 0]
    )
    upper = surface_from_corners(
        [0, 0, height],
        [size_x, 0, height],
        [size_x, size_y, height],
        [0, size_y, height],
    )
    return lower, upper


def test_default_surfaces():
    tree = generate_lattice_array([2, 1, 1])
    assert tree.paths() == [(0, 0, 0), (1, 0, 0)]
    assert tree.extent == (2, 1, 1)

    corners = make_corner_nodes()
    expected = np.column_stack(
        [(1 + corners[:, 0]) / 2, corners[:, 1], corners[:, 2]]
    )
    np.testing.assert_allclose(tree[(1, 0, 0)], expected)


def test_number_of_cells():
    extent = [3, 2, 4]
    tree = generate_lattice_array(extent)
    # cells with unit offsets fit if their index is below the extent
    expected = [
        cell
        for cell in product(range(4), range(3), range(5))
        if all(c + 1 <= n for c, n in zip(cell, extent))
    ]
    assert tree.paths() == sorted(expected)
    assert len(tree) == 24


def test_points_match_global_coordinates():
    extent = (4, 2, 3)
    tree = generate_lattice_array(extent, surfaces=box_surfaces(4.0, 2.0, 3.0))
    corners = make_corner_nodes()
    for path, points in tree.items():
        np.testing.assert_allclose(points, np.array(path) + corners, atol=1e-12)


def test_knot_vectors_are_reparametrized():
    lower, upper = box_surfaces(1.0, 1.0, 1.0)
    stretched = [
        splinepy.BSpline(
            degrees=[1, 1],
            knot_vectors=[[0, 0, 2, 2], [0, 0, 2, 2]],
            control_points=s.control_points,
        )
        for s in (lower, upper)
    ]
    reference = generate_lattice_array([2, 2, 2], surfaces=(lower, upper))
    tree = generate_lattice_array([2, 2, 2], surfaces=stretched)
    assert tree.paths() == reference.paths()
    np.testing.assert_allclose(tree.flat_points(), reference.flat_points())


def test_curved_upper_surface():
    lower = surface_from_corners([0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0])
    upper = splinepy.BSpline(
        degrees=[2, 1],
        knot_vectors=[[0, 0, 0, 1, 1, 1], [0, 0, 1, 1]],
        control_points=np.array(
            [
                [0, 0, 1],
                [0.5, 0, 2],
                [1, 0, 1],
                [0, 1, 1],
                [0.5, 1, 2],
                [1, 1, 1],
            ],
            dtype=float,
        ),
    )
    extent = [2, 2, 2]
    tree = generate_lattice_array(extent, surfaces=(lower, upper))
    corners = make_corner_nodes()
    for path, points in tree.items():
        uvw = (np.array(path) + corners) / np.array(extent)
        bottom = lower.evaluate(uvw[:, :2])
        top = upper.evaluate(uvw[:, :2])
        expected = bottom + (top - bottom) * uvw[:, 2:3]
        np.testing.assert_allclose(points, expected, atol=1e-12)


def test_unit_cell_offsets():
    cell = UnitCell.from_segments(preset_segments("octet"))
    tree = generate_lattice_array([2, 2, 2], reference_offsets=cell)
    assert len(tree) == 8
    assert all(points.shape == (14, 3) for points in tree.values())


def test_zero_extent():
    tree = generate_lattice_array([0, 2, 2])
    assert len(tree) == 0
    assert tree.flat_points().shape == (0, 3)


def test_flat_axis_offsets():
    # offsets without extent in w fit a grid with a single layer
    offsets = [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]]
    tree = generate_lattice_array([2, 2, 0], reference_offsets=offsets)
    assert tree.paths() == [(0, 0, 0), (0, 1, 0), (1, 0, 0), (1, 1, 0)]
    assert np.all(tree.flat_points()[:, 2] == 0.0)


def test_check_extent():
    assert check_extent(3) == [3, 3, 3]
    assert check_extent((1, 2, 3)) == [1, 2, 3]
    with pytest.raises(ValueError):
        check_extent([1, -1, 2])
    with pytest.raises(ValueError):
        check_extent([1, 2])


def test_shared_points_on_seams():
    tree = generate_lattice_array([2, 1, 1])
    points = tree.flat_points()
    assert points.shape == (16, 3)
    valence = SpatialIndex(points).valence(1e-6)
    on_seam = np.isclose(points[:, 0], 0.5)
    assert np.all(valence[on_seam] == 2)
    assert np.all(valence[~on_seam] == 1)


def test_generator_dtype():
    generator = LatticeArrayGenerator(dtype=torch.float32)
    tree = generator(2)
    assert len(tree) == 8
    np.testing.assert_allclose(tree[(1, 1, 1)].max(axis=0), [1, 1, 1], atol=1e-6)


def test_generator_requires_two_surfaces():
    lower, _ = box_surfaces(1.0, 1.0, 1.0)
    with pytest.raises(ValueError):
        LatticeArrayGenerator(surfaces=[lower])


if __name__ == "__main__":
    test_default_surfaces()
    test_shared_points_on_seams()
