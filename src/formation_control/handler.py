"""
Pose mobility handler for GrADyS-SIM NG.

Each formation agent integrates its own unicycle kinematics inside its
protocol. This handler mirrors the latest integrated pose of every agent
onto its simulator node, so that communication range and visualization
follow the physical agent, and emits telemetry after each update.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from gradysim.simulator.event import EventLoop
from gradysim.simulator.node import Node
from gradysim.simulator.handler.interface import INodeHandler
from gradysim.protocol.messages.telemetry import Telemetry


@dataclass
class PoseMobilityConfiguration:
    """
    Configuration parameters for the PoseMobilityHandler.

    Attributes:
        update_rate: Time interval (in seconds) between node position updates.
            Usually equal to the agents' sample time.
        altitude: Constant z coordinate given to planar agents (m).
        send_telemetry: If True, emit Telemetry messages after position updates.
        telemetry_decimation: Emit telemetry every N updates (default: 1).
    """
    update_rate: float
    altitude: float = 0.0
    send_telemetry: bool = True
    telemetry_decimation: int = 1


class PoseMobilityHandler(INodeHandler):
    """
    Planar pose mobility handler for GrADyS-SIM NG.

    Usage:
        handler = PoseMobilityHandler(PoseMobilityConfiguration(update_rate=0.1))

        # In your protocol, after each algorithm cycle:
        handler.set_pose(node_id, (x, y, theta))
    """

    def __init__(self, config: PoseMobilityConfiguration):
        """
        Initialize the pose mobility handler.

        Args:
            config: Configuration parameters for the update rate, altitude and telemetry.
        """
        self._config = config
        self._loop: EventLoop = None
        self._nodes: Dict[int, Node] = {}

        # Latest commanded planar pose per node: (x, y, theta)
        self._poses: Dict[int, Tuple[float, float, float]] = {}

        # Telemetry tracking: count updates per node
        self._update_counter: Dict[int, int] = {}

    def get_label(self) -> str:
        """Return the handler label for identification."""
        return "PoseMobilityHandler"

    def register_node(self, node: Node):
        """
        Register a node with this handler (called when node is created).

        The node keeps its initial (x, y) with heading 0 until its protocol
        calls set_pose().

        Args:
            node: The node instance to register.
        """
        node_id = node.id
        self._nodes[node_id] = node
        x, y, _z = node.position
        self._poses[node_id] = (float(x), float(y), 0.0)
        self._update_counter[node_id] = 0

    def inject(self, event_loop: EventLoop):
        """
        Inject the event loop into the handler.

        Args:
            event_loop: The event loop for scheduling periodic updates.
        """
        self._loop = event_loop

    def initialize(self):
        """
        Start the periodic mobility update loop.

        Schedules the first mobility update event for all nodes.
        """
        if self._nodes:
            self._loop.schedule_event(
                self._loop.current_time + self._config.update_rate,
                self._mobility_update,
            )

    def handle_timer(self, timer: str):
        """Handle timer events (not used by this handler)."""
        pass

    def handle_packet(self, message: str):
        """Handle incoming packets (not used by this handler)."""
        pass

    def finish(self):
        """Cleanup when simulation ends (not used by this handler)."""
        pass

    def finalize(self):
        """Finalize handler after simulation ends (not used by this handler)."""
        pass

    def after_simulation_step(self, iteration: int, time: float):
        """
        Called after each simulation step.

        Args:
            iteration: Current simulation iteration number
            time: Current simulation time
        """
        pass

    def set_pose(self, node_id: int, pose: Tuple[float, float, float]) -> None:
        """
        Set the pose (x, y, theta) the node will take on the next update.

        Args:
            node_id: Identifier of the node.
            pose: Planar pose (x, y, theta) in meters/radians.
        """
        self._poses[node_id] = (float(pose[0]), float(pose[1]), float(pose[2]))
        self._update_counter.setdefault(node_id, 0)

    def get_node_pose(self, node_id: int) -> Tuple[float, float, float] | None:
        """
        Get the latest pose commanded for a node.

        Args:
            node_id: ID of the node

        Returns:
            Pose (x, y, theta) in meters/radians, or None if the node is unknown
        """
        return self._poses.get(node_id)

    def get_node_position(self, node_id: int) -> Tuple[float, float, float] | None:
        """
        Get the current position of a node.

        Args:
            node_id: ID of the node

        Returns:
            Position vector (x, y, z) in meters, or None if node not registered
        """
        node = self._nodes.get(node_id)
        return node.position if node is not None else None

    def _mobility_update(self):
        """
        Perform a single mobility update step for all nodes.

        This method:
        1. Moves every registered node to its latest pose at the configured altitude
        2. Optionally emits telemetry
        3. Schedules the next update
        """
        for node_id, node in self._nodes.items():
            x, y, _theta = self._poses[node_id]
            node.position = (x, y, self._config.altitude)

            self._update_counter[node_id] += 1
            if self._should_emit_telemetry(node_id):
                self._emit_telemetry(node)

        self._loop.schedule_event(
            self._loop.current_time + self._config.update_rate,
            self._mobility_update,
        )

    def _should_emit_telemetry(self, node_id: int) -> bool:
        """
        Check whether telemetry is due for a node.

        Args:
            node_id: ID of the node

        Returns:
            True if telemetry is enabled and the update count hits the decimation
        """
        if not self._config.send_telemetry:
            return False

        count = self._update_counter[node_id]
        return (count % self._config.telemetry_decimation) == 0

    def _emit_telemetry(self, node: Node):
        """
        Schedule delivery of a Telemetry message to the node's protocol.

        Args:
            node: The node whose position is reported.
        """
        telemetry = Telemetry(current_position=node.position)

        def send_telemetry():
            node.protocol_encapsulator.handle_telemetry(telemetry)

        self._loop.schedule_event(
            self._loop.current_time,
            send_telemetry,
            f"Node {node.id} handle_telemetry",
        )
