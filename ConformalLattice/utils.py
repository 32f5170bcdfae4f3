"""
Utility Functions
=================

This module provides general utility functions used throughout
ConformalLattice, including logging configuration and the unit cube corner
helper used as the default reference cell.

Functions
---------
configure_logging
    Set up logging for the ConformalLattice package with customizable
    output format and destinations.
make_corner_nodes
    Corner points of an axis-aligned cube in the standard ordering.
"""

import logging

import numpy as np

import ConformalLattice


def configure_logging(level=logging.INFO, logfile=None):
    """Configure logging for the ConformalLattice package.

    Sets up a logger with a standard format and optional file output.
    This is called automatically when ConformalLattice is imported.

    Parameters
    ----------
    level : int, default logging.INFO
        Logging level (e.g., logging.DEBUG, logging.INFO, logging.WARNING).
    logfile : str, optional
        Path to log file. If provided, logs are written to both console
        and file. If None, logs only to console.

    Examples
    --------
    >>> from ConformalLattice.utils import configure_logging
    >>> import logging
    >>>
    >>> # Set debug level and log to file
    >>> configure_logging(level=logging.DEBUG, logfile='lattice.log')

    Notes
    -----
    The log format is: "HH:MM:SS message"
    """
    logger = logging.getLogger(ConformalLattice.__name__)
    logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    # repeated calls only adjust the level and add file handlers
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        logger_handler = logging.StreamHandler()
        logger_handler.setFormatter(formatter)
        logger.addHandler(logger_handler)

    if logfile is not None:
        file_logger_handler = logging.FileHandler(logfile)
        file_logger_handler.setFormatter(formatter)
        logger.addHandler(file_logger_handler)


def make_corner_nodes(size=1.0) -> np.ndarray:
    """Corners of the cube [0, size]^3.

    The bottom face (z=0) comes first, counter-clockwise starting at the
    origin, followed by the top face in the same order.
    """
    d = float(size)
    return np.array(
        [
            [0, 0, 0],
            [d, 0, 0],
            [d, d, 0],
            [0, d, 0],
            [0, 0, d],
            [d, 0, d],
            [d, d, d],
            [0, d, d],
        ],
        dtype=float,
    )
