"""
PyTorch-Compatible B-Spline Surfaces
====================================

This module provides differentiable evaluation of the B-spline surfaces that
bound a conformal lattice, using PyTorch. The lattice generator evaluates
both bounding surfaces for all grid points of a lattice in one batch.

Key Features
------------

TorchSpline Class
    Wraps a splinepy B-spline surface and evaluates it in torch, with
    automatic differentiation support with respect to control points and
    query coordinates.

Surface Helpers
    - reparametrize_to_unit_domain: rescale knot vectors to [0, 1]
    - surface_from_corners: bilinear patch through four corner points
    - default_bounding_surfaces: the flat bottom and top of the unit cube

Low-level Functions
    - torch_spline_2D: Evaluate 2D tensor product B-splines
    - bspline_basis: Compute B-spline basis functions

Examples
--------
Evaluate a bilinear surface::

    import torch
    from ConformalLattice.torch_spline import TorchSpline, surface_from_corners

    surface = surface_from_corners([0, 0, 0], [2, 0, 0], [2, 1, 0], [0, 1, 0])
    torch_surface = TorchSpline(surface, dtype=torch.float64)
    points = torch_surface(torch.tensor([[0.5, 0.5]], dtype=torch.float64))

Notes
-----
Rational splines (NURBS) are not supported.
"""

import numpy as np
import splinepy as sp
import torch

from ConformalLattice.utils import make_corner_nodes


def bspline_basis(t, p, queries: torch.tensor):
    x = queries

    n_basis = len(t) - p - 1
    t_clamped = torch.clamp(x, t[p], t[-p - 1])
    k = torch.searchsorted(t, t_clamped, right=True) - 1
    k = torch.clamp(k, min=p, max=n_basis - 1).view(-1)

    # For each t, pick degree+1 control points for that span
    i = k.view(-1, 1) + torch.arange(-p, 1, device=queries.device).view(
        1, -1
    )  # (n_queries, degree+1)

    # b[j] = N_{j,p}(t) for local control points
    d = (
        torch.eye(p + 1, device=queries.device, dtype=queries.dtype)
        .unsqueeze(0)
        .repeat(queries.shape[0], 1, 1)
    )

    # vectorized deboor from https://en.wikipedia.org/wiki/De_Boor%27s_algorithm
    for r in range(1, p + 1):
        j_idx = torch.arange(p, r - 1, -1, device=t.device)

        idx_j_plus_k = j_idx.unsqueeze(0) + k.unsqueeze(1)
        idx_j_plus_k_minus_p = idx_j_plus_k - p
        idx_j_plus_k_plus_1_minus_r = idx_j_plus_k + 1 - r

        jkmp = t[idx_j_plus_k_minus_p]
        j1kmr = t[idx_j_plus_k_plus_1_minus_r]

        alpha = ((x.unsqueeze(-1) - jkmp) / (j1kmr - jkmp)).unsqueeze(-1)
        d[:, j_idx, :] = (1.0 - alpha) * d[:, j_idx - 1, :] + alpha * d[:, j_idx, :]

    # Result
    y = d[:, p, :]
    return i, y


def torch_spline_2D(knot_vectors, control_points, degrees, queries):
    """
    Evaluate a 2D B-spline surface at query points.

    Args:
        tu, tv knot vectors for u, v
        pu, pv degrees
        cp: control points, shape (nu * nv, d), u running fastest
        queries: parametric coordinates, shape (N, 2)

    Returns:
        y: evaluated spline, shape (N, d)
    """
    tu, tv = knot_vectors
    pu, pv = degrees
    qu = queries[:, 0]
    qv = queries[:, 1]

    # Basis functions along each axis
    iu, bu = bspline_basis(tu, pu, qu)  # (N, pu+1), (N, pu+1)
    iv, bv = bspline_basis(tv, pv, qv)

    torch.testing.assert_close(bu.sum(dim=1), torch.ones_like(qu))
    torch.testing.assert_close(bv.sum(dim=1), torch.ones_like(qv))

    nu = len(tu) - pu - 1
    nv = len(tv) - pv - 1

    assert nu * nv == control_points.shape[0]

    bu_ = bu[:, :, None]  # (N, pu+1, 1)
    bv_ = bv[:, None, :]  # (N, 1, pv+1)

    # Compute outer product of weights: (N, pu+1, pv+1)
    weights = bu_ * bv_

    iu_ = iu[:, :, None]  # (N, pu+1, 1)
    iv_ = iv[:, None, :]  # (N, 1, pv+1)

    flat_idx = iu_ + nu * iv_
    cp_selected = control_points[flat_idx]
    y = (weights[:, :, :, None] * cp_selected).sum(dim=(1, 2))  # (N, d)

    return y


class TorchSpline(torch.nn.Module):
    """Torch evaluation of a splinepy B-spline surface."""

    spline: sp.BSpline

    def __init__(self, spline: sp.BSpline, device="cpu", dtype=torch.float32):
        super().__init__()
        if spline.para_dim != 2:
            raise NotImplementedError(
                f"Only spline surfaces are supported, got para_dim={spline.para_dim}"
            )
        self.device = device
        self.dtype = dtype
        self.spline = spline
        self.control_points = torch.nn.Parameter(
            torch.tensor(np.asarray(spline.control_points), dtype=dtype, device=device)
        )
        self.knot_vectors = [
            torch.tensor(np.asarray(knot), dtype=dtype, device=device)
            for knot in spline.knot_vectors
        ]
        self.degrees = [int(d) for d in spline.degrees]

    def forward(self, queries: torch.Tensor):
        return torch_spline_2D(
            self.knot_vectors, self.control_points, self.degrees, queries
        )


def reparametrize_to_unit_domain(spline) -> sp.BSpline:
    """Copy of ``spline`` whose parametric domain is [0, 1] in every direction.

    Bezier splines are converted to B-splines first.
    """
    if isinstance(spline, (sp.NURBS, sp.RationalBezier)):
        raise NotImplementedError("Rational splines are not supported.")
    if not isinstance(spline, sp.BSpline):
        spline = spline.bspline

    knot_vectors = []
    for knots in spline.knot_vectors:
        knots = np.asarray(knots, dtype=float)
        knot_vectors.append(((knots - knots[0]) / (knots[-1] - knots[0])).tolist())

    return sp.BSpline(
        degrees=np.asarray(spline.degrees).tolist(),
        knot_vectors=knot_vectors,
        control_points=np.asarray(spline.control_points, dtype=float),
    )


def surface_from_corners(c0, c1, c2, c3) -> sp.BSpline:
    """
    Bilinear surface through four corner points.

    Parameters
    ----------
    c0, c1, c2, c3 : array-like (3,)
        Corners in counter-clockwise order, mapped to the parametric
        coordinates (0, 0), (1, 0), (1, 1) and (0, 1).

    Returns
    -------
    spline : splinepy.BSpline
        Degree one surface on the unit square.
    """
    corners = np.asarray([c0, c1, c3, c2], dtype=float)
    if corners.shape != (4, 3):
        raise ValueError("Corners must be four 3D points.")
    return sp.BSpline(
        degrees=[1, 1],
        knot_vectors=[[0, 0, 1, 1], [0, 0, 1, 1]],
        control_points=corners,
    )


def default_bounding_surfaces(size=1.0):
    """Flat bottom (z=0) and top (z=size) faces of the cube [0, size]^3."""
    corners = make_corner_nodes(size)
    return surface_from_corners(*corners[:4]), surface_from_corners(*corners[4:])
