import numpy as np
import pytest

from ConformalLattice.lattice_array import generate_lattice_array
from ConformalLattice.preset_cells import preset_segments
from ConformalLattice.spatial import SpatialIndex
from ConformalLattice.struts import LatticeStruts, create_struts, map_unit_cell
from ConformalLattice.torch_spline import surface_from_corners
from ConformalLattice.unit_cell import UnitCell


@pytest.fixture
def box_2x1x1():
    lower = surface_from_corners([0, 0, 0], [2, 0, 0], [2, 1, 0], [0, 1, 0])
    upper = surface_from_corners([0, 0, 1], [2, 0, 1], [2, 1, 1], [0, 1, 1])
    return lower, upper


def tile(name, extent, surfaces=None):
    cell = UnitCell.from_segments(preset_segments(name))
    tree = generate_lattice_array(extent, reference_offsets=cell, surfaces=surfaces)
    return cell, tree, map_unit_cell(cell, tree)


def test_grid_cell_two_cells(box_2x1x1):
    _, _, struts = tile("grid", [2, 1, 1], surfaces=box_2x1x1)
    assert struts.num_vertices == 12
    assert struts.num_lines == 20
    coords = struts.line_coordinates()
    lengths = np.linalg.norm(coords[:, 1] - coords[:, 0], axis=1)
    np.testing.assert_allclose(lengths, 1.0)


def test_x_cell_two_cells():
    _, _, struts = tile("x", [2, 1, 1])
    # 3x2x2 corners plus one center per cell
    assert struts.num_vertices == 14
    assert struts.num_lines == 16


def test_octet_single_cell():
    _, _, struts = tile("octet", [1, 1, 1])
    assert struts.num_vertices == 14
    assert struts.num_lines == 36


@pytest.mark.parametrize("name", ["grid", "x", "star", "cross", "octet"])
def test_vertices_are_unique(name):
    _, tree, struts = tile(name, [2, 2, 2])
    # every lattice point counted once, shared ones split between cells
    valence = SpatialIndex(tree.flat_points()).valence(1e-6)
    assert struts.num_vertices == int(round(np.sum(1.0 / valence)))
    assert np.all(SpatialIndex(struts.vertices).valence(1e-6) == 1)

    lines = np.sort(struts.lines, axis=1)
    assert len(np.unique(lines, axis=0)) == struts.num_lines
    assert np.all(lines[:, 0] != lines[:, 1])


def test_struts_follow_surfaces():
    lower = surface_from_corners([0, 0, 0], [3, 0, 0], [3, 3, 1], [0, 3, 1])
    upper = surface_from_corners([0, 0, 2], [3, 0, 2], [3, 3, 3], [0, 3, 3])
    cell, tree, struts = tile("cross", [3, 3, 2], surfaces=(lower, upper))
    heights = struts.vertices[:, 2] - struts.vertices[:, 1] / 3
    assert heights.min() == pytest.approx(0.0, abs=1e-12)
    assert heights.max() == pytest.approx(2.0, abs=1e-12)


def test_create_struts():
    points = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0]])
    struts = create_struts([(1, 0), (0, 1), (1, 2)], points)
    assert struts.lines.tolist() == [[0, 1], [1, 2]]
    assert struts.num_vertices == 3


def test_line_index_out_of_range():
    with pytest.raises(AssertionError):
        LatticeStruts(np.zeros((2, 3)), [(0, 2)])


def test_to_gus():
    _, _, struts = tile("grid", [1, 1, 1])
    edges = struts.to_gus()
    np.testing.assert_allclose(edges.vertices, struts.vertices)
    assert np.array_equal(edges.edges, struts.lines)


def test_unindexed_cell():
    cell = UnitCell.from_segments(preset_segments("grid"), index_boundaries=False)
    tree = generate_lattice_array([1, 1, 1], reference_offsets=cell)
    with pytest.raises(ValueError):
        map_unit_cell(cell, tree)


def test_point_count_mismatch():
    cell = UnitCell.from_segments(preset_segments("x"))
    tree = generate_lattice_array([1, 1, 1])
    with pytest.raises(ValueError):
        map_unit_cell(cell, tree)


if __name__ == "__main__":
    _, _, struts = tile("octet", [2, 2, 2])
    struts.show()
