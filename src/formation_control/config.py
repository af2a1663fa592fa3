"""
Configuration dataclass for the formation statistics agent.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

# The moment map phi(p) = [px, py, pxx, pxy, pyy] is planar: 5 statistics, 2 velocities.
NUMBER_OF_STATS: int = 5
NUMBER_OF_VELOCITIES: int = 2


class ConfigurationError(ValueError):
    """Raised when an agent configuration cannot drive the control loop."""


@dataclass
class AgentConfiguration:
    """
    Configuration parameters for a single formation agent.

    Attributes:
        sample_time: Period (seconds) of the algorithm cycle.
        velocity_virtual_threshold: Maximum norm (m/s) of the virtual agent velocity.
        los_distance_threshold: LOS distance (m) beyond which the speed reference
            saturates at speed_max.
        speed_min, speed_max: Speed command saturation (m/s).
        steer_min, steer_max: Steer command saturation (rad).
        k_p_speed: Proportional gain of the PI speed loop.
        k_i_speed: Integral gain of the PI speed loop.
        k_p_steer: Proportional gain of the steering law.
        vehicle_length: Wheelbase L (m) of the unicycle/bicycle model.
        world_limit: Half-width (m) of the square used for random initial placement.
        diag_elements_gamma: Diagonal of Gamma (statistics error gain).
        diag_elements_lambda: Diagonal of Lambda (Jacobian weighting gain).
        diag_elements_b: Diagonal of B (virtual actuation damping).
        initial_pose: Optional (x, y, theta). When None the pose is drawn at random.
        neighbours: Ids of the agents whose estimates enter the consensus.
        number_of_stats: Statistics dimension (must be 5).
        number_of_velocities: Control dimension (must be 2).
    """
    sample_time: float = 0.1
    velocity_virtual_threshold: float = 1.0
    los_distance_threshold: float = 1.0
    speed_min: float = 0.0
    speed_max: float = 1.0
    steer_min: float = -0.5
    steer_max: float = 0.5
    k_p_speed: float = 1.0
    k_i_speed: float = 0.1
    k_p_steer: float = 1.0
    vehicle_length: float = 0.5
    world_limit: float = 10.0
    diag_elements_gamma: Tuple[float, ...] = (1.0,) * NUMBER_OF_STATS
    diag_elements_lambda: Tuple[float, ...] = (0.0,) * NUMBER_OF_STATS
    diag_elements_b: Tuple[float, ...] = (1.0,) * NUMBER_OF_VELOCITIES
    initial_pose: Optional[Tuple[float, float, float]] = None
    neighbours: Tuple[int, ...] = field(default_factory=tuple)
    number_of_stats: int = NUMBER_OF_STATS
    number_of_velocities: int = NUMBER_OF_VELOCITIES

    def validate(self) -> None:
        """Check the configuration once, before the first cycle.

        Raises:
            ConfigurationError: On any parameter that would make a cycle
                undefined (wrong dimensions, malformed gains, non-positive
                thresholds, inverted limits).
        """
        if self.number_of_stats != NUMBER_OF_STATS:
            raise ConfigurationError(
                f"number_of_stats must be {NUMBER_OF_STATS}, got {self.number_of_stats}"
            )
        if self.number_of_velocities != NUMBER_OF_VELOCITIES:
            raise ConfigurationError(
                f"number_of_velocities must be {NUMBER_OF_VELOCITIES}, got {self.number_of_velocities}"
            )

        for name in (
            "sample_time",
            "velocity_virtual_threshold",
            "los_distance_threshold",
            "vehicle_length",
            "world_limit",
        ):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0.0):
                raise ConfigurationError(f"{name} must be > 0, got {value!r}")

        for name in ("speed_min", "speed_max", "steer_min", "steer_max", "k_p_speed", "k_i_speed", "k_p_steer"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigurationError(f"{name} must be finite")
        if self.speed_min > self.speed_max:
            raise ConfigurationError("speed_min must be <= speed_max")
        if self.steer_min > self.steer_max:
            raise ConfigurationError("steer_min must be <= steer_max")

        self._validate_diagonal("diag_elements_gamma", self.diag_elements_gamma, self.number_of_stats)
        self._validate_diagonal("diag_elements_lambda", self.diag_elements_lambda, self.number_of_stats)
        self._validate_diagonal("diag_elements_b", self.diag_elements_b, self.number_of_velocities)

        # B positive definite and Lambda positive semi-definite keep B + J'*Lambda*J
        # invertible for every virtual position.
        if any(value < 0.0 for value in self.diag_elements_lambda):
            raise ConfigurationError("diag_elements_lambda must be >= 0")
        if any(value <= 0.0 for value in self.diag_elements_b):
            raise ConfigurationError(
                "diag_elements_b must be > 0 (B + J'*Lambda*J would not be invertible)"
            )

        if self.initial_pose is not None:
            if len(self.initial_pose) != 3 or not all(math.isfinite(v) for v in self.initial_pose):
                raise ConfigurationError("initial_pose must be a finite (x, y, theta) triple")

    @staticmethod
    def _validate_diagonal(name: str, values, size: int) -> None:
        if len(values) != size:
            raise ConfigurationError(f"{name} must have {size} elements, got {len(values)}")
        if not all(math.isfinite(v) for v in values):
            raise ConfigurationError(f"{name} must contain only finite values")
