"""
ConformalLattice - Periodic Lattice Generation from Line-Based Unit Cells
=========================================================================

ConformalLattice turns a single repeating unit cell, drawn as a set of raw
line segments, into a periodic lattice. The unit cell topology is extracted,
normalized to the unit cube, validated for periodicity and indexed so that
neighbouring cells share their boundary nodes and struts exactly once. The
indexed cell is then tiled over an integer grid, optionally morphed between
two bounding spline surfaces.

Key Components
--------------

Unit Cell
    - ``ConformalLattice.topology``: Segment intersection resolution and
      node/edge extraction
    - ``ConformalLattice.unit_cell``: Normalization, validation and
      boundary indexing of unit cells
    - ``ConformalLattice.preset_cells``: Library of common unit cells

Tiling
    - ``ConformalLattice.lattice_array``: Grid-indexed lattice points between
      two bounding surfaces
    - ``ConformalLattice.struts``: Seam-free strut mesh from an indexed unit
      cell and a lattice tree
    - ``ConformalLattice.torch_spline``: Differentiable B-spline surfaces

Utilities
    - ``ConformalLattice.spatial``: k-d tree nearest point and valence queries
    - ``ConformalLattice.utils``: Logging configuration and helpers

Examples
--------
Tile an octet cell between two flat surfaces::

    from ConformalLattice.preset_cells import preset_segments
    from ConformalLattice.unit_cell import UnitCell
    from ConformalLattice.lattice_array import generate_lattice_array
    from ConformalLattice.struts import map_unit_cell

    cell = UnitCell.from_segments(preset_segments("octet"))
    tree = generate_lattice_array([4, 4, 2], reference_offsets=cell.nodes)
    struts = map_unit_cell(cell, tree)
    struts.show()
"""

import ConformalLattice.utils

ConformalLattice.utils.configure_logging()

__version__ = "0.1.0"
__author__ = "ConformalLattice developers"
