"""
Protocol for the agent node.
"""

import logging
import os
import random
from typing import Optional, Tuple

import pandas as pd

from gradysim.protocol.interface import IProtocol
from gradysim.protocol.messages.telemetry import Telemetry
from gradysim.protocol.messages.communication import CommunicationCommand, CommunicationCommandType

import json

from config_param import (
    ALGORITHM_TIMER_STR,
    DIAG_ELEMENTS_B,
    DIAG_ELEMENTS_GAMMA,
    DIAG_ELEMENTS_LAMBDA,
    FRAME_AGENT_PREFIX,
    FRAME_VIRTUAL_SUFFIX,
    INITIAL_POSES,
    K_I_SPEED,
    K_P_SPEED,
    K_P_STEER,
    LOS_DISTANCE_THRESHOLD,
    NEIGHBOURS,
    NUM_AGENTS,
    NUMBER_OF_STATS,
    NUMBER_OF_VELOCITIES,
    RANDOM_SEED,
    SAMPLE_TIME,
    SIM_DEBUG,
    SPEED_MAX,
    SPEED_MIN,
    STEER_MAX,
    STEER_MIN,
    VEHICLE_LENGTH,
    VELOCITY_VIRTUAL_THRESHOLD,
    WORLD_LIMIT,
)
from formation_control import AgentConfiguration, AgentCore, FormationStatistics
from protocol_messages import AgentPoseStamped, FormationStatisticsStamped, TargetStatistics

TELEMETRY_COLUMNS = [
    "node_id",
    "timestamp",
    "m_x",
    "m_y",
    "m_xx",
    "m_xy",
    "m_yy",
    "x",
    "y",
    "theta",
    "x_virtual",
    "y_virtual",
    "speed_command",
    "steer_command",
    "los_distance",
]


def ring_neighbours(agent_id: int, num_agents: int) -> Tuple[int, ...]:
    """Predecessor and successor of agent_id on a ring of num_agents agents."""
    if num_agents < 2:
        return ()
    neighbours = {(agent_id - 1) % num_agents, (agent_id + 1) % num_agents}
    neighbours.discard(agent_id)
    return tuple(sorted(neighbours))


def build_agent_configuration(agent_id: int) -> AgentConfiguration:
    """Agent configuration from the project-wide parameters."""
    if NEIGHBOURS is not None:
        neighbours = tuple(NEIGHBOURS.get(agent_id, ()))
    else:
        neighbours = ring_neighbours(agent_id, NUM_AGENTS)

    return AgentConfiguration(
        sample_time=SAMPLE_TIME,
        velocity_virtual_threshold=VELOCITY_VIRTUAL_THRESHOLD,
        los_distance_threshold=LOS_DISTANCE_THRESHOLD,
        speed_min=SPEED_MIN,
        speed_max=SPEED_MAX,
        steer_min=STEER_MIN,
        steer_max=STEER_MAX,
        k_p_speed=K_P_SPEED,
        k_i_speed=K_I_SPEED,
        k_p_steer=K_P_STEER,
        vehicle_length=VEHICLE_LENGTH,
        world_limit=WORLD_LIMIT,
        diag_elements_gamma=tuple(DIAG_ELEMENTS_GAMMA),
        diag_elements_lambda=tuple(DIAG_ELEMENTS_LAMBDA),
        diag_elements_b=tuple(DIAG_ELEMENTS_B),
        initial_pose=INITIAL_POSES.get(agent_id),
        neighbours=neighbours,
        number_of_stats=NUMBER_OF_STATS,
        number_of_velocities=NUMBER_OF_VELOCITIES,
    )


class AgentProtocol(IProtocol):
    """Implementation of agent protocol."""

    def __init__(self):
        super().__init__()
        self._logger = logging.getLogger()

    def initialize(self):
        self.node_id = self.provider.get_id() # Get the node ID from the provider
        config = build_agent_configuration(self.node_id)
        self.sample_time = config.sample_time

        rng = None
        if RANDOM_SEED is not None:
            rng = random.Random(int(RANDOM_SEED) + int(self.node_id))

        # Raises ConfigurationError on a malformed configuration; the simulation
        # entrypoint validates every agent before building the simulation.
        self.core = AgentCore(self.node_id, config, publish=self.publish_estimate, rng=rng)

        # Access the PoseMobilityHandler if available
        handlers = getattr(self.provider, "handlers", {}) or {}
        self.pose_handler = handlers.get("PoseMobilityHandler")
        self._sync_pose_handler()

        # Sequence numbers (outgoing estimates, last accepted target)
        self.estimate_seq = 1
        self.last_seq_target: int = -1

        # Telemetry logging (in-memory). The main.py creates the CSV and sets the path
        # via environment variable to avoid tight coupling with the simulator builder.
        self._csv_path: Optional[str] = os.environ.get("AGENT_LOG_CSV_PATH")
        self._telemetry_rows = []

        self._logger.info(
            "Agent %s: initial pose (%.3f, %.3f, %.3f), neighbours %s",
            self.node_id,
            self.core.pose.x,
            self.core.pose.y,
            self.core.pose.theta,
            list(config.neighbours),
        )

        # Schedule the algorithm timer for the first time, once synchronized
        start_time = self.wait_for_sync_time(self.provider.current_time())
        self.provider.schedule_timer(ALGORITHM_TIMER_STR, start_time + self.sample_time)

    def wait_for_sync_time(self, now: float) -> float:
        """Return the time the agents agree to start from.

        Placeholder for a clock synchronization primitive shared with the
        ground station: it returns `now`. Override to plug a real one.
        """
        return now

    def schedule_algorithm_timer(self):
        self.provider.schedule_timer(ALGORITHM_TIMER_STR, self.provider.current_time() + self.sample_time)

    def _broadcast(self, message_json: str) -> None:
        command = CommunicationCommand(CommunicationCommandType.BROADCAST, message_json)
        self.provider.send_communication_command(command)

    def publish_estimate(self, stats: FormationStatistics, stamp: float) -> None:
        """Broadcast the estimate produced by the consensus step."""
        message = FormationStatisticsStamped(
            agent_id=self.node_id,
            seq=self.estimate_seq,
            stamp=stamp,
            stats=stats,
        )
        self._broadcast(message.to_json())
        self.estimate_seq += 1

        if SIM_DEBUG:
            print(f"Agent {self.node_id} broadcasted estimate seq={message.seq}, stats={tuple(stats)}")

    def publish_poses(self, stamp: float) -> None:
        frame = f"{FRAME_AGENT_PREFIX}{self.node_id}"
        for frame_id, pose in (
            (frame, self.core.pose),
            (frame + FRAME_VIRTUAL_SUFFIX, self.core.pose_virtual),
        ):
            message = AgentPoseStamped(
                agent_id=self.node_id,
                frame_id=frame_id,
                stamp=stamp,
                position=pose.position,
                theta=pose.theta,
            )
            self._broadcast(message.to_json())

    def _sync_pose_handler(self) -> None:
        if self.pose_handler is not None:
            pose = self.core.pose
            self.pose_handler.set_pose(self.node_id, (pose.x, pose.y, pose.theta))

    def handle_timer(self, timer: str):
        if timer == ALGORITHM_TIMER_STR:
            now = self.provider.current_time()

            # consensus -> publish estimate -> control -> guidance -> dynamics
            self.core.run_cycle(now)

            self.publish_poses(now)
            self._sync_pose_handler()

            if SIM_DEBUG:
                print(
                    f"Agent {self.node_id} t={now:.2f} pose=({self.core.pose.x:.3f}, {self.core.pose.y:.3f}), "
                    f"speed={self.core.speed_command:.3f}, steer={self.core.steer_command:.3f}"
                )

            # Reschedule the algorithm timer
            self.schedule_algorithm_timer()

    def handle_packet(self, message: str):
        try:
            data = json.loads(message)
        except (ValueError, TypeError) as exc:
            self._logger.warning("Agent %s: failed to parse packet as JSON (%s): %r", self.node_id, exc, message)
            return

        if not isinstance(data, dict):
            self._logger.warning("Agent %s: ignoring non-object packet: %r", self.node_id, message)
            return

        msg_type = data.get("type")
        if msg_type == FormationStatisticsStamped.TYPE:
            try:
                received = FormationStatisticsStamped.from_json(message)
            except (ValueError, KeyError, TypeError) as exc:
                self._logger.warning(
                    "Agent %s: failed to decode FormationStatisticsStamped (%s): %r", self.node_id, exc, message
                )
                return
            self.core.receive_neighbor_statistics([(received.agent_id, received.stats)])
            return

        if msg_type == TargetStatistics.TYPE:
            try:
                target = TargetStatistics.from_json(message)
            except (ValueError, KeyError, TypeError) as exc:
                self._logger.warning("Agent %s: failed to decode TargetStatistics (%s): %r", self.node_id, exc, message)
                return

            # Discard out-of-order target messages.
            if target.seq <= self.last_seq_target:
                return
            self.last_seq_target = target.seq
            if tuple(target.stats) != tuple(self.core.target_statistics):
                self.core.set_target_statistics(target.stats)
            return

        # Pose messages are meant for the ground station
        self._logger.debug("Agent %s: ignoring packet type=%r", self.node_id, msg_type)

    def handle_telemetry(self, telemetry: Telemetry) -> None:
        if not self._csv_path:
            return

        core = self.core
        self._telemetry_rows.append(
            {
                "node_id": int(self.node_id),
                "timestamp": float(self.provider.current_time()),
                **core.estimated_statistics._asdict(),
                "x": core.pose.x,
                "y": core.pose.y,
                "theta": core.pose.theta,
                "x_virtual": core.pose_virtual.x,
                "y_virtual": core.pose_virtual.y,
                "speed_command": core.speed_command,
                "steer_command": core.steer_command,
                "los_distance": core.los_distance,
            }
        )

    def finish(self):
        if not self._csv_path or not self._telemetry_rows:
            return

        try:
            df = pd.DataFrame(self._telemetry_rows, columns=TELEMETRY_COLUMNS)

            # Append without header; main.py already created the file with header.
            # Still guard for the case where the file was removed mid-run.
            file_exists = os.path.exists(self._csv_path)
            df.to_csv(self._csv_path, mode="a", header=not file_exists, index=False)
        except OSError as exc:
            self._logger.warning(
                "Agent %s: failed to write telemetry CSV (%s): %r",
                getattr(self, "node_id", "?"),
                exc,
                self._csv_path,
            )
