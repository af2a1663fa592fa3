"""Pure mathematical functions for formation statistics control.

This module contains stateless operations for:
- Trapezoidal integration and saturation
- The moment map phi(p) = [px, py, pxx, pxy, pyy], its rate and Jacobian
- Dynamic discrete consensus on the statistics estimate
- The feedback-linearizing control law of the virtual agent
- Line-of-sight guidance and unicycle kinematics of the physical agent

Positions and velocities are plain (x, y) tuples; statistics and gains are
numpy vectors. Gain matrices are diagonal and are passed as their diagonal.
"""

import math
from typing import Optional, Tuple

import numpy as np


def integrate(out_old: float, in_old: float, in_new: float, dt: float, k: float = 1.0) -> float:
    """Trapezoidal integration step.

        out_new = out_old + k * dt * (in_old + in_new) / 2

    The same primitive advances positions (k=1) and the PI integral (k=k_i).
    """
    return out_old + k * dt * (in_old + in_new) / 2.0


def saturate(value: float, min_value: float, max_value: float) -> float:
    """Clamp value to [min_value, max_value]."""
    return min(max(value, min_value), max_value)


def saturate_norm(vector: np.ndarray, threshold: float) -> np.ndarray:
    """Rescale vector to norm `threshold` if it exceeds it (direction preserved)."""
    vector = np.asarray(vector, dtype=float)
    norm = float(np.linalg.norm(vector))
    if norm > threshold:
        return vector * (threshold / norm)
    return vector


def moment_map(position: Tuple[float, float]) -> np.ndarray:
    """phi(p) = [px, py, px^2, px*py, py^2]."""
    px, py = position
    return np.array([px, py, px * px, px * py, py * py], dtype=float)


def moment_rates(position: Tuple[float, float], velocity: Tuple[float, float]) -> np.ndarray:
    """Time derivative of phi(p) along the velocity (vx, vy)."""
    px, py = position
    vx, vy = velocity
    return np.array(
        [
            vx,
            vy,
            2.0 * px * vx,
            py * vx + px * vy,
            2.0 * py * vy,
        ],
        dtype=float,
    )


def moment_jacobian(position: Tuple[float, float], jacobian: Optional[np.ndarray] = None) -> np.ndarray:
    """Jacobian of phi(p) (5x2) at the given position.

    Rows 0 and 1 are constant (identity). When `jacobian` is given only the
    four position-dependent entries are rewritten, in place.
    """
    if jacobian is None:
        jacobian = np.eye(5, 2)
    px, py = position
    jacobian[2, 0] = 2.0 * px
    jacobian[3, 0] = py
    jacobian[3, 1] = px
    jacobian[4, 1] = 2.0 * py
    return jacobian


def consensus_update(
    estimate: np.ndarray,
    neighbor_estimates: np.ndarray,
    phi_dot: np.ndarray,
    dt: float,
) -> np.ndarray:
    """Dynamic discrete consensus step.

        x_next = x + phi_dot * dt + dt * sum_j (x_j - x)

    `neighbor_estimates` is a (count, n) matrix, one row per buffered
    neighbour vector. The Laplacian term is not normalized by the number of
    neighbours, and with no rows it vanishes.
    """
    x = np.asarray(estimate, dtype=float)
    x_j = np.asarray(neighbor_estimates, dtype=float).reshape(-1, x.size)
    return x + np.asarray(phi_dot, dtype=float) * dt + (x_j - x).sum(axis=0) * dt


def control_law_matrix(jacobian: np.ndarray, lambda_diag: np.ndarray, b_diag: np.ndarray) -> np.ndarray:
    """B + J' * Lambda * J (control dimension square)."""
    jacobian = np.asarray(jacobian, dtype=float)
    weighted = np.asarray(lambda_diag, dtype=float)[:, np.newaxis] * jacobian
    return np.diag(np.asarray(b_diag, dtype=float)) + jacobian.T @ weighted


def compute_control_law(
    stats_error: np.ndarray,
    jacobian: np.ndarray,
    gamma_diag: np.ndarray,
    lambda_diag: np.ndarray,
    b_diag: np.ndarray,
    velocity_threshold: float,
) -> np.ndarray:
    """Virtual agent velocity from the statistics error.

        u = inv(B + J' * Lambda * J) * J' * Gamma * e

    then saturated in norm to `velocity_threshold`.
    """
    jacobian = np.asarray(jacobian, dtype=float)
    rhs = jacobian.T @ (np.asarray(gamma_diag, dtype=float) * np.asarray(stats_error, dtype=float))
    control = np.linalg.solve(control_law_matrix(jacobian, lambda_diag, b_diag), rhs)
    return saturate_norm(control, velocity_threshold)


def line_of_sight(
    physical_position: Tuple[float, float],
    virtual_position: Tuple[float, float],
) -> Tuple[float, float]:
    """LOS distance and angle from the physical agent to the virtual agent.

    atan2(0, 0) == 0, so the angle is 0 when both positions coincide.
    """
    dx = virtual_position[0] - physical_position[0]
    dy = virtual_position[1] - physical_position[1]
    return math.hypot(dx, dy), math.atan2(dy, dx)


def compute_speed_reference(los_distance: float, speed_max: float, los_distance_threshold: float) -> float:
    """Proportional approach speed, saturating at speed_max past the threshold."""
    return min(speed_max * los_distance / los_distance_threshold, speed_max)


def compute_steer_command(
    los_angle: float,
    heading: float,
    k_p_steer: float,
    steer_min: float,
    steer_max: float,
) -> float:
    """Proportional steering on the LOS angle error reduced modulo pi.

    The reduction is modulo pi, not 2*pi: the steering error is axis
    symmetric, so pointing forward or backward along the LOS gives the same
    command. math.fmod keeps the sign of the dividend.
    """
    steer_command = k_p_steer * math.fmod(los_angle - heading, math.pi)
    return saturate(steer_command, steer_min, steer_max)


def unicycle_rates(speed: float, steer: float, theta: float, vehicle_length: float) -> Tuple[float, float, float]:
    """Kinematic rates (x_dot, y_dot, theta_dot) for speed v and steer delta.

        x_dot = v cos(theta), y_dot = v sin(theta), theta_dot = v / L * tan(delta)
    """
    return (
        speed * math.cos(theta),
        speed * math.sin(theta),
        speed / vehicle_length * math.tan(steer),
    )
