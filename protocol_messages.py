"""Message/data structures shared by multiple protocols.

This module exists to avoid circular imports between protocols.
"""

from __future__ import annotations

import json

from formation_control.orientation import heading_to_quaternion, quaternion_to_heading
from formation_control.statistics import FormationStatistics


class FormationStatisticsStamped:
    """Estimated statistics broadcast by an agent after each consensus step."""

    TYPE = "FormationStatisticsStamped"

    def __init__(self, agent_id, seq, stamp, stats):
        self.agent_id = agent_id
        self.seq = seq
        self.stamp = stamp  # simulation time (s)
        self.stats = FormationStatistics(*stats)

    def to_json(self) -> str:
        return json.dumps(
            {
                "type": self.TYPE,
                "agent_id": self.agent_id,
                "seq": self.seq,
                "stamp": self.stamp,
                "stats": self.stats.to_dict(),
                "sender_id": self.agent_id,
            }
        )

    @staticmethod
    def from_json(json_str: str) -> FormationStatisticsStamped:
        message_dict = json.loads(json_str)
        message_type = message_dict.get("type")
        if message_type != FormationStatisticsStamped.TYPE:
            raise ValueError(f"Unexpected message type: {message_type!r}")
        return FormationStatisticsStamped(
            agent_id=int(message_dict["agent_id"]),
            seq=int(message_dict["seq"]),
            stamp=float(message_dict["stamp"]),
            stats=FormationStatistics.from_dict(message_dict["stats"]),
        )


class TargetStatistics:
    """Target statistics broadcast by the ground station."""

    TYPE = "TargetStatistics"

    def __init__(self, station_id: int, seq: int, stats):
        self.station_id = station_id
        self.seq = seq
        self.stats = FormationStatistics(*stats)

    def to_json(self) -> str:
        return json.dumps(
            {
                "type": self.TYPE,
                "station_id": self.station_id,
                "seq": self.seq,
                "stats": self.stats.to_dict(),
                "sender_id": self.station_id,
            }
        )

    @staticmethod
    def from_json(json_str: str) -> TargetStatistics:
        message_dict = json.loads(json_str)
        message_type = message_dict.get("type")
        if message_type != TargetStatistics.TYPE:
            raise ValueError(f"Unexpected message type: {message_type!r}")
        return TargetStatistics(
            station_id=int(message_dict["station_id"]),
            seq=int(message_dict["seq"]),
            stats=FormationStatistics.from_dict(message_dict["stats"]),
        )


class AgentPoseStamped:
    """Planar pose of an agent (physical or virtual), orientation as quaternion."""

    TYPE = "AgentPoseStamped"

    def __init__(self, agent_id, frame_id: str, stamp, position, theta):
        self.agent_id = agent_id
        self.frame_id = frame_id
        self.stamp = stamp
        self.position = position  # (x, y)
        self.theta = theta  # heading (rad)

    def to_json(self) -> str:
        qx, qy, qz, qw = heading_to_quaternion(self.theta)
        return json.dumps(
            {
                "type": self.TYPE,
                "agent_id": self.agent_id,
                "frame_id": self.frame_id,
                "stamp": self.stamp,
                "position": {"x": self.position[0], "y": self.position[1], "z": 0.0},
                "orientation": {"x": qx, "y": qy, "z": qz, "w": qw},
                "sender_id": self.agent_id,
            }
        )

    @staticmethod
    def from_json(json_str: str) -> AgentPoseStamped:
        message_dict = json.loads(json_str)
        message_type = message_dict.get("type")
        if message_type != AgentPoseStamped.TYPE:
            raise ValueError(f"Unexpected message type: {message_type!r}")
        pos = message_dict["position"]
        ori = message_dict["orientation"]
        return AgentPoseStamped(
            agent_id=int(message_dict["agent_id"]),
            frame_id=str(message_dict["frame_id"]),
            stamp=float(message_dict["stamp"]),
            position=(float(pos["x"]), float(pos["y"])),
            theta=quaternion_to_heading((ori["x"], ori["y"], ori["z"], ori["w"])),
        )
