"""Identifiers shared with an external geometry/visualization collaborator.

Identifiers are allocated from process-wide counters starting at 1, so a
valid identifier is never zero. A body or model without one holds ``None``.
"""

import itertools
from dataclasses import dataclass
from typing import ClassVar, Iterator, Optional

import jax


@dataclass(frozen=True)
class SourceId:
    """Identifies a model registered as a source of geometry."""
    value: int

    _counter: ClassVar[Iterator[int]] = itertools.count(1)

    @classmethod
    def get_new_id(cls) -> "SourceId":
        return cls(next(cls._counter))


@dataclass(frozen=True)
class FrameId:
    """Identifies a moving frame whose pose the geometry collaborator consumes."""
    value: int

    _counter: ClassVar[Iterator[int]] = itertools.count(1)

    @classmethod
    def get_new_id(cls) -> "FrameId":
        return cls(next(cls._counter))


@dataclass(frozen=True, eq=False)
class VisualGeometry:
    """A visual geometry attached to a body.

    Attributes:
        body_index: Index of the body the geometry is attached to.
        name: Name of the geometry, unique within its body.
        shape: Free-form shape description (e.g. ``"box"``, ``"sphere"``).
        X_BG: Pose of the geometry frame G in the body frame B.
        frame_id: Frame the geometry moves with, or ``None`` when anchored
            to the world.
    """
    body_index: int
    name: str
    shape: str
    X_BG: jax.Array
    frame_id: Optional[FrameId]

    @property
    def is_anchored(self) -> bool:
        return self.frame_id is None
