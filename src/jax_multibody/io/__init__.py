"""I/O utilities for building multibody models from robot description files.

This module provides functions for parsing standard robotics file formats
into finalized ``MultibodyModel`` instances.
"""

from .urdf_parser import load_urdf

__all__ = ["load_urdf"]
