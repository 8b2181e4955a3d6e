"""Linearizer: local LTI approximation of the multibody dynamics.

Linearizing ``xdot = f(x, u)`` with ``x = [q; v]`` about ``(x0, u0)`` gives

    d(dx)/dt = A @ dx + B @ du,   A = df/dx,  B = df/du.

By default the Jacobians come from forward-mode automatic differentiation of
the time-derivative kernel and are exact to round-off. A central-difference
fallback is available for comparison. Output matrices are not computed.
"""

import logging

import jax
import jax.numpy as jnp
from flax import struct
from jax import Array

from .core import MultibodyModel, MultibodyState
from .dynamics import _as_actuation, _time_derivatives
from .exceptions import SingularMassMatrixError

logger = logging.getLogger(__name__)

_METHODS = ("autodiff", "central_difference")


@struct.dataclass
class LinearSystem:
    """Continuous-time linear system ``xdot = A x + B u``.

    Attributes:
        A: State matrix of shape (num_states, num_states).
        B: Input matrix of shape (num_states, num_inputs).
        x0: Operating state ``[q0; v0]``.
        u0: Operating input.
    """
    A: Array
    B: Array
    x0: Array
    u0: Array

    @property
    def num_states(self) -> int:
        return self.A.shape[0]

    @property
    def num_inputs(self) -> int:
        return self.B.shape[1]


def _central_difference(f, x: Array, epsilon: float) -> Array:
    columns = []
    for i in range(x.shape[0]):
        dx = jnp.zeros_like(x).at[i].set(epsilon)
        columns.append((f(x + dx) - f(x - dx)) / (2.0 * epsilon))
    return jnp.stack(columns, axis=-1)


def linearize(
    model: MultibodyModel,
    state: MultibodyState,
    actuation=None,
    method: str = "autodiff",
    epsilon: float = 1e-6,
) -> LinearSystem:
    """Linearize the time derivatives about an operating point.

    Args:
        model: Finalized model.
        state: Operating state.
        actuation: Operating input of shape (num_actuators,); zero if omitted.
        method: ``"autodiff"`` or ``"central_difference"``.
        epsilon: Perturbation size used by ``"central_difference"``.

    Returns:
        LinearSystem with A of shape (num_multibody_states, num_multibody_states)
        and B of shape (num_multibody_states, num_actuators).

    Raises:
        ValueError: If ``method`` is unknown.
        SingularMassMatrixError: If the dynamics are not finite at the operating point.
    """
    model.check_state(state, "linearize")
    if method not in _METHODS:
        raise ValueError(f"Unknown linearization method '{method}'; expected one of {_METHODS}")
    u0 = _as_actuation(model, actuation, "linearize")
    x0 = state.x
    num_positions = model.num_positions()

    def f(x: Array, u: Array) -> Array:
        return _time_derivatives(model, x[:num_positions], x[num_positions:], u)

    if method == "autodiff":
        A = jax.jacfwd(f, argnums=0)(x0, u0)
        B = jax.jacfwd(f, argnums=1)(x0, u0) if u0.shape[0] else jnp.zeros((x0.shape[0], 0))
    else:
        A = _central_difference(lambda x: f(x, u0), x0, epsilon)
        B = _central_difference(lambda u: f(x0, u), u0, epsilon) if u0.shape[0] else jnp.zeros((x0.shape[0], 0))

    if not (bool(jnp.all(jnp.isfinite(A))) and bool(jnp.all(jnp.isfinite(B)))):
        raise SingularMassMatrixError(
            "Linearization produced non-finite matrices; the mass matrix is singular at the operating point"
        )

    logger.debug("Linearized %d-state, %d-input model using %s", A.shape[0], B.shape[1], method)
    return LinearSystem(A=A, B=B, x0=x0, u0=u0)
