"""Single-agent estimation and control loop.

AgentCore owns all per-agent state (poses, twists, gains, buffers) and runs
the periodic cycle in fixed order:

    consensus -> publish estimate -> control -> guidance -> dynamics

Inbound events (neighbour estimates, target statistics) only append to or
replace state; all consumption happens inside the next cycle. The core is
not thread-safe: inbound events and run_cycle() must be serialized on the
same execution context.
"""

import logging
import math
import random
from typing import Callable, Iterable, Optional, Sequence, Tuple

import numpy as np

from .config import AgentConfiguration
from .core import (
    compute_control_law,
    compute_speed_reference,
    compute_steer_command,
    consensus_update,
    integrate,
    line_of_sight,
    moment_jacobian,
    moment_rates,
    saturate,
    unicycle_rates,
)
from .orientation import wrap_to_pi
from .state import AgentPose, AgentTwist, GuidanceState, NeighborStatisticsBuffer
from .statistics import (
    ZERO_STATISTICS,
    FormationStatistics,
    statistics_to_vector,
    vector_to_statistics,
)

# publish(statistics, stamp)
EstimatePublisher = Callable[[FormationStatistics, float], None]


class AgentCore:
    """Formation statistics agent: consensus, control law, LOS guidance, kinematics."""

    def __init__(
        self,
        agent_id: int,
        config: AgentConfiguration,
        publish: Optional[EstimatePublisher] = None,
        rng: Optional[random.Random] = None,
    ):
        config.validate()

        self.agent_id = int(agent_id)
        self._config = config
        self._publish = publish
        self._logger = logging.getLogger(__name__)

        self._gamma = np.asarray(config.diag_elements_gamma, dtype=float)
        self._lambda = np.asarray(config.diag_elements_lambda, dtype=float)
        self._b = np.asarray(config.diag_elements_b, dtype=float)
        self.jacobian = np.eye(config.number_of_stats, config.number_of_velocities)

        # Agent pose initialization (null twist at the beginning).
        x, y, theta = config.initial_pose or self._random_pose(rng or random.Random())
        theta = wrap_to_pi(theta)
        self.pose = AgentPose(float(x), float(y), theta)
        self.twist = AgentTwist()
        self.pose_virtual = AgentPose(float(x), float(y), theta)
        self.twist_virtual = AgentTwist()
        self.guidance_state = GuidanceState()

        self.estimated_statistics: FormationStatistics = ZERO_STATISTICS
        self.target_statistics: FormationStatistics = ZERO_STATISTICS
        self.neighbor_buffer = NeighborStatisticsBuffer(config.neighbours)

        self.los_distance: float = 0.0
        self.los_angle: float = 0.0
        self.speed_command: float = 0.0
        self.steer_command: float = 0.0

    @property
    def config(self) -> AgentConfiguration:
        return self._config

    def _random_pose(self, rng: random.Random) -> Tuple[float, float, float]:
        limit = self._config.world_limit
        return (
            rng.uniform(-limit, limit),
            rng.uniform(-limit, limit),
            rng.uniform(-math.pi, math.pi),
        )

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def receive_neighbor_statistics(self, received: Iterable[Tuple[int, Sequence[float]]]) -> int:
        """Buffer (agent_id, statistics) pairs coming from configured neighbours.

        Returns the number of buffered vectors. Vectors of the wrong dimension
        are logged and dropped.
        """
        count = 0
        for agent_id, stats in received:
            if int(agent_id) == self.agent_id:
                continue
            converted = vector_to_statistics(stats, fallback=None)
            if converted is None:
                continue
            if self.neighbor_buffer.append(agent_id, statistics_to_vector(converted)):
                count += 1
        self._logger.debug(
            "Agent %s: %d statistics buffered from neighbours.", self.agent_id, len(self.neighbor_buffer)
        )
        return count

    def set_target_statistics(self, target: Sequence[float]) -> None:
        """Replace the target statistics wholesale (kept unchanged on a malformed vector)."""
        converted = vector_to_statistics(target, fallback=None)
        if converted is None:
            return
        self.target_statistics = converted
        self._logger.info("Agent %s: target statistics has been changed.", self.agent_id)
        self._logger.debug(
            "Agent %s: new values Mx=%s, My=%s, Mxx=%s, Mxy=%s, Myy=%s",
            self.agent_id,
            *self.target_statistics,
        )

    # ------------------------------------------------------------------
    # Algorithm cycle
    # ------------------------------------------------------------------

    def run_cycle(self, stamp: float = 0.0) -> FormationStatistics:
        """Run one full algorithm cycle and return the published estimate."""
        estimate = self.consensus()
        if self._publish is not None:
            self._publish(estimate, stamp)
        self.control()
        self.guidance()
        self.dynamics()
        return estimate

    def consensus(self) -> FormationStatistics:
        """Dynamic discrete consensus on the statistics estimate.

        x_k+1 = x_k + phi_dot_k * S + S * sum_j(x_j_k - x_k)
        """
        x = statistics_to_vector(self.estimated_statistics)
        x_j = self.neighbor_buffer.drain(self._config.number_of_stats)
        phi_dot = moment_rates(self.pose_virtual.position, self.twist_virtual.linear)

        x = consensus_update(x, x_j, phi_dot, self._config.sample_time)
        self.estimated_statistics = vector_to_statistics(x, fallback=self.estimated_statistics)

        self._logger.debug("Agent %s: estimated statistics %s", self.agent_id, tuple(self.estimated_statistics))
        return self.estimated_statistics

    def control(self) -> np.ndarray:
        """Feedback-linearizing control law driving the virtual agent."""
        stats_error = statistics_to_vector(self.target_statistics) - statistics_to_vector(self.estimated_statistics)
        moment_jacobian(self.pose_virtual.position, self.jacobian)

        control = compute_control_law(
            stats_error,
            self.jacobian,
            self._gamma,
            self._lambda,
            self._b,
            self._config.velocity_virtual_threshold,
        )

        dt = self._config.sample_time
        vx_new, vy_new = float(control[0]), float(control[1])
        self.pose_virtual.x = integrate(self.pose_virtual.x, self.twist_virtual.vx, vx_new, dt)
        self.pose_virtual.y = integrate(self.pose_virtual.y, self.twist_virtual.vy, vy_new, dt)
        self.twist_virtual.vx = vx_new
        self.twist_virtual.vy = vy_new

        self._logger.debug(
            "Agent %s: virtual agent pose (x: %.4f, y: %.4f), twist (x: %.4f, y: %.4f)",
            self.agent_id,
            self.pose_virtual.x,
            self.pose_virtual.y,
            self.twist_virtual.vx,
            self.twist_virtual.vy,
        )
        return control

    def guidance(self) -> Tuple[float, float]:
        """LOS guidance: PI speed loop and proportional steering."""
        cfg = self._config
        state = self.guidance_state

        self.los_distance, self.los_angle = line_of_sight(self.pose.position, self.pose_virtual.position)

        speed_reference = compute_speed_reference(self.los_distance, cfg.speed_max, cfg.los_distance_threshold)
        speed_error_old = state.speed_error
        state.speed_error = speed_reference - math.hypot(self.twist.vx, self.twist.vy)
        state.speed_integral = integrate(
            state.speed_integral, speed_error_old, state.speed_error, cfg.sample_time, cfg.k_i_speed
        )
        speed_command = cfg.k_p_speed * (state.speed_error + state.speed_integral)
        self.speed_command = saturate(speed_command, cfg.speed_min, cfg.speed_max)

        self.steer_command = compute_steer_command(
            self.los_angle, self.pose.theta, cfg.k_p_steer, cfg.steer_min, cfg.steer_max
        )

        self._logger.debug(
            "Agent %s: speed command %.4f, steer command %.4f",
            self.agent_id,
            self.speed_command,
            self.steer_command,
        )
        return self.speed_command, self.steer_command

    def dynamics(self) -> None:
        """Advance the physical agent with the saturated speed/steer commands."""
        dt = self._config.sample_time
        theta = self.pose.theta
        x_dot_new, y_dot_new, theta_dot_new = unicycle_rates(
            self.speed_command, self.steer_command, theta, self._config.vehicle_length
        )

        self.pose.x = integrate(self.pose.x, self.twist.vx, x_dot_new, dt)
        self.pose.y = integrate(self.pose.y, self.twist.vy, y_dot_new, dt)
        self.pose.theta = wrap_to_pi(integrate(theta, self.twist.omega, theta_dot_new, dt))
        self.twist.vx = x_dot_new
        self.twist.vy = y_dot_new
        self.twist.omega = theta_dot_new

        self._logger.debug(
            "Agent %s: agent pose (x: %.4f, y: %.4f, theta: %.4f)",
            self.agent_id,
            self.pose.x,
            self.pose.y,
            self.pose.theta,
        )
