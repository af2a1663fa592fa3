"""Heading <-> orientation conversion.

The control loop works on the scalar heading only; quaternions appear at
the message boundary (pose messages), ordered (x, y, z, w).
"""

import math
from typing import Tuple

Quaternion = Tuple[float, float, float, float]


def wrap_to_pi(angle: float) -> float:
    """Wrap an angle to (-pi, pi]."""
    two_pi = 2.0 * math.pi
    wrapped = math.pi - ((math.pi - float(angle)) % two_pi)
    return float(wrapped)


def heading_to_quaternion(theta: float) -> Quaternion:
    """Planar rotation of theta about the z axis."""
    half = 0.5 * float(theta)
    return (0.0, 0.0, math.sin(half), math.cos(half))


def quaternion_to_heading(quat: Quaternion) -> float:
    """Yaw of a (possibly non-normalized) quaternion, in (-pi, pi]."""
    x, y, z, w = (float(v) for v in quat)
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    if not (math.isfinite(norm) and norm > 0.0):
        raise ValueError(f"Invalid quaternion: {quat!r}")
    x, y, z, w = x / norm, y / norm, z / norm, w / norm
    yaw = math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))
    return wrap_to_pi(yaw)
