"""Joint actuators mapping scalar inputs to generalized forces."""

from dataclasses import dataclass

from .joints import Joint


@dataclass(frozen=True, eq=False)
class JointActuator:
    """Applies a scalar input as a force or torque on a single-DOF joint.

    Attributes:
        index: Ordinal index, also the actuator's entry in the input vector.
        name: Name unique among the actuators of the model.
        joint: The actuated joint; must have exactly one velocity.
    """
    index: int
    name: str
    joint: Joint

    @property
    def velocity_index(self) -> int:
        """Entry of the generalized-velocity vector this actuator drives."""
        return self.joint.velocity_start

    def __repr__(self) -> str:
        return f"JointActuator(index={self.index}, name={self.name!r}, joint={self.joint.name!r})"
