import numpy as np
import pytest

from ConformalLattice.preset_cells import PresetCells, preset_segments
from ConformalLattice.unit_cell import CellValidity, UnitCell


@pytest.mark.parametrize(
    "name, num_nodes, num_edges, num_owned_edges",
    [
        ("grid", 8, 12, 3),
        ("x", 9, 8, 8),
        ("star", 15, 14, 14),
        ("cross", 15, 18, 9),
        ("octet", 14, 36, 24),
    ],
)
def test_preset_topology(name, num_nodes, num_edges, num_owned_edges):
    cell = UnitCell.from_segments(preset_segments(name), index_boundaries=False)
    assert cell.num_nodes == num_nodes
    assert cell.num_edges == num_edges
    assert cell.check_validity(check_mirror=True) is CellValidity.VALID

    cell.format_topology()
    assert cell.num_edges == num_owned_edges


@pytest.mark.parametrize("cell", list(PresetCells))
def test_preset_segments_shape(cell):
    segments = preset_segments(cell)
    assert segments.ndim == 3
    assert segments.shape[1:] == (2, 3)
    assert segments.min() == 0.0
    assert segments.max() == 1.0
    np.testing.assert_allclose(segments, preset_segments(cell.value))


def test_unknown_preset():
    with pytest.raises(ValueError):
        preset_segments("kagome")
