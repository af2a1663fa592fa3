"""Per-agent state containers owned by the agent core."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

import numpy as np

_logger = logging.getLogger(__name__)


@dataclass
class AgentPose:
    """Planar pose: position (x, y) and heading theta (rad)."""
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class AgentTwist:
    """Linear velocity (vx, vy) and angular rate."""
    vx: float = 0.0
    vy: float = 0.0
    omega: float = 0.0

    @property
    def linear(self) -> Tuple[float, float]:
        return (self.vx, self.vy)


@dataclass
class GuidanceState:
    """PI speed loop memory kept across cycles."""
    speed_error: float = 0.0
    speed_integral: float = 0.0


class NeighborStatisticsBuffer:
    """Neighbour estimates received since the last consensus step.

    Messages accumulate between cycles and are consumed all at once by
    drain(). Only ids in the configured neighbour set are buffered.
    """

    def __init__(self, neighbours: Iterable[int]):
        self._neighbours = frozenset(int(n) for n in neighbours)
        self._entries: List[Tuple[int, np.ndarray]] = []

    @property
    def neighbours(self) -> frozenset:
        return self._neighbours

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, agent_id: int, vector: np.ndarray) -> bool:
        """Buffer a neighbour estimate. Returns False if agent_id is not a neighbour."""
        agent_id = int(agent_id)
        if agent_id not in self._neighbours:
            return False
        if any(buffered_id == agent_id for buffered_id, _ in self._entries):
            _logger.warning("Last received statistics from agent %s has not been used.", agent_id)
        self._entries.append((agent_id, np.asarray(vector, dtype=float)))
        return True

    def drain(self, number_of_stats: int) -> np.ndarray:
        """Return all buffered vectors as a (count, number_of_stats) matrix and clear."""
        entries, self._entries = self._entries, []
        if not entries:
            return np.zeros((0, number_of_stats))
        return np.vstack([vector for _, vector in entries])

