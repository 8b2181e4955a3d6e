"""Exceptions raised by jax_multibody.

Every error is raised synchronously at the offending call and carries the
name of the element or operation involved. None of them is transient.
"""


class MultibodyError(Exception):
    """Base class of all errors raised by this package."""


class LifecycleError(MultibodyError, RuntimeError):
    """An operation was called in the wrong model phase."""

    @classmethod
    def post_finalize(cls, operation: str) -> "LifecycleError":
        return cls(
            f"Post-finalize calls to '{operation}()' are not allowed; "
            "calls to this method must happen before finalize()."
        )

    @classmethod
    def pre_finalize(cls, operation: str) -> "LifecycleError":
        return cls(
            f"Pre-finalize calls to '{operation}()' are not allowed; "
            "you must call finalize() first."
        )


class AlreadyFinalizedError(LifecycleError):
    """finalize() was called on a model that is already finalized."""


class NotFoundError(MultibodyError, LookupError):
    """No element with the requested name exists in its category."""


class TypeMismatchError(MultibodyError, TypeError):
    """A typed joint lookup found a joint of a different variant."""


class InvalidReferenceError(MultibodyError, ValueError):
    """An element belonging to another model was passed in."""


class DuplicateNameError(MultibodyError, ValueError):
    """An element name is already used within its category."""


class TopologyError(MultibodyError, ValueError):
    """The requested connection would break the tree structure."""


class NoGeometryRegisteredError(MultibodyError, LookupError):
    """A geometry query was made for a body or model without geometry."""


class SingularMassMatrixError(MultibodyError, ArithmeticError):
    """The mass matrix could not be factorized.

    Unreachable for finalized models whose moving bodies all have positive
    mass and non-degenerate inertia.
    """
