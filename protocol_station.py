"""
Protocol for the ground station node.

The station broadcasts the target formation statistics, optionally changes
them once during the run, and records what the agents publish (estimates
and poses) together with the actual statistics of the formation.
"""
import logging
import os
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from gradysim.protocol.interface import IProtocol
from gradysim.protocol.messages.telemetry import Telemetry
from gradysim.protocol.messages.communication import CommunicationCommand, CommunicationCommandType

import json

from config_param import (
    FRAME_VIRTUAL_SUFFIX,
    SIM_DEBUG,
    TARGET_CHANGE_TIME,
    TARGET_CHANGE_TIMER_STR,
    TARGET_STATISTICS,
    TARGET_STATISTICS_NEXT,
    TARGET_STATS_BROADCAST_PERIOD,
    TARGET_STATS_BROADCAST_TIMER_STR,
)
from formation_control import FormationStatistics, moment_map
from protocol_messages import AgentPoseStamped, FormationStatisticsStamped, TargetStatistics


def formation_statistics(positions) -> FormationStatistics:
    """Actual formation statistics: the mean of phi(p) over the agent positions."""
    positions = list(positions)
    if not positions:
        return FormationStatistics()
    mean = np.mean([moment_map(p) for p in positions], axis=0)
    return FormationStatistics(*(float(v) for v in mean))


class StationProtocol(IProtocol):
    """Implementation of ground station protocol."""

    def __init__(self):
        super().__init__()
        self._logger = logging.getLogger()

    def initialize(self):
        self.node_id = self.provider.get_id() # Get the node ID from the provider
        self.broadcast_period = TARGET_STATS_BROADCAST_PERIOD  # Broadcast period in seconds
        self.target_statistics = FormationStatistics(*TARGET_STATISTICS)
        self.target_seq = 1

        # Latest received agent data: agent_id -> (value, rxtime)
        self.estimates: Dict[int, Tuple[FormationStatistics, float]] = {}
        self.poses: Dict[int, Tuple[AgentPoseStamped, float]] = {}
        self.virtual_poses: Dict[int, Tuple[AgentPoseStamped, float]] = {}

        # Telemetry logging (in-memory). The main.py creates the CSV and sets the path
        # via environment variable to avoid tight coupling with the simulator builder.
        self._csv_path: Optional[str] = os.environ.get("STATION_LOG_CSV_PATH")
        self._telemetry_rows = []

        # Broadcast right away so agents start with a target
        self.provider.schedule_timer(TARGET_STATS_BROADCAST_TIMER_STR, self.provider.current_time())
        if TARGET_CHANGE_TIME is not None:
            self.provider.schedule_timer(TARGET_CHANGE_TIMER_STR, self.provider.current_time() + float(TARGET_CHANGE_TIME))

    def schedule_broadcast_timer(self):
        self.provider.schedule_timer(
            TARGET_STATS_BROADCAST_TIMER_STR,
            self.provider.current_time() + self.broadcast_period,
        )

    def broadcast_target(self) -> None:
        message = TargetStatistics(station_id=self.node_id, seq=self.target_seq, stats=self.target_statistics)
        command = CommunicationCommand(CommunicationCommandType.BROADCAST, message.to_json())
        self.provider.send_communication_command(command)
        self.target_seq += 1

        if SIM_DEBUG:
            print(f"Station {self.node_id} broadcasted target seq={message.seq}, stats={tuple(message.stats)}")

    def record_snapshot(self, now: float) -> None:
        """Log and record the current formation against the target."""
        actual = formation_statistics(
            state.position for state, _rxtime in self.poses.values()
        )
        error = float(np.linalg.norm(np.array(self.target_statistics) - np.array(actual)))
        self._logger.debug("Station %s: formation statistics %s (error %.4f)", self.node_id, tuple(actual), error)

        for agent_id, (stats, _rxtime) in sorted(self.estimates.items()):
            row = {"timestamp": float(now), "agent_id": int(agent_id)}
            row.update({f"est_{k}": v for k, v in stats._asdict().items()})
            row.update({f"target_{k}": v for k, v in self.target_statistics._asdict().items()})
            row.update({f"actual_{k}": v for k, v in actual._asdict().items()})

            pose = self.poses.get(agent_id)
            virtual = self.virtual_poses.get(agent_id)
            row["x"], row["y"], row["theta"] = (
                (pose[0].position[0], pose[0].position[1], pose[0].theta) if pose else (np.nan, np.nan, np.nan)
            )
            row["x_virtual"], row["y_virtual"] = (virtual[0].position if virtual else (np.nan, np.nan))
            self._telemetry_rows.append(row)

    def handle_timer(self, timer: str):
        if timer == TARGET_STATS_BROADCAST_TIMER_STR:
            now = self.provider.current_time()
            self.broadcast_target()
            self.record_snapshot(now)
            self.schedule_broadcast_timer()
            return

        if timer == TARGET_CHANGE_TIMER_STR:
            self.target_statistics = FormationStatistics(*TARGET_STATISTICS_NEXT)
            self._logger.info("Station %s: target statistics changed to %s", self.node_id, tuple(self.target_statistics))
            self.broadcast_target()
            return

    def handle_packet(self, message: str):
        try:
            data = json.loads(message)
        except (ValueError, TypeError) as exc:
            self._logger.warning("Station %s: failed to parse packet as JSON (%s): %r", self.node_id, exc, message)
            return

        if not isinstance(data, dict):
            self._logger.warning("Station %s: ignoring non-object packet: %r", self.node_id, message)
            return

        msg_type = data.get("type")
        now = self.provider.current_time()

        if msg_type == FormationStatisticsStamped.TYPE:
            try:
                received = FormationStatisticsStamped.from_json(message)
            except (ValueError, KeyError, TypeError) as exc:
                self._logger.warning(
                    "Station %s: failed to decode FormationStatisticsStamped (%s): %r", self.node_id, exc, message
                )
                return
            self.estimates[int(received.agent_id)] = (received.stats, now)
            return

        if msg_type == AgentPoseStamped.TYPE:
            try:
                pose = AgentPoseStamped.from_json(message)
            except (ValueError, KeyError, TypeError) as exc:
                self._logger.warning("Station %s: failed to decode AgentPoseStamped (%s): %r", self.node_id, exc, message)
                return
            if pose.frame_id.endswith(FRAME_VIRTUAL_SUFFIX):
                self.virtual_poses[int(pose.agent_id)] = (pose, now)
            else:
                self.poses[int(pose.agent_id)] = (pose, now)
            return

        # Unknown/unsupported message type
        self._logger.debug("Station %s: ignoring packet type=%r", self.node_id, msg_type)

    def handle_telemetry(self, telemetry: Telemetry) -> None:
        pass

    def finish(self):
        if not self._csv_path or not self._telemetry_rows:
            return

        try:
            df = pd.DataFrame(self._telemetry_rows)
            file_exists = os.path.exists(self._csv_path)
            df.to_csv(self._csv_path, mode="a", header=not file_exists, index=False)
        except OSError as exc:
            self._logger.warning(
                "Station %s: failed to write telemetry CSV (%s): %r",
                getattr(self, "node_id", "?"),
                exc,
                self._csv_path,
            )
