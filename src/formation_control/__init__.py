"""Formation statistics control building blocks.

This package contains the single-agent estimation and control loop used
for multi-agent formation shape control (statistics consensus, feedback
linearized virtual agent, LOS guidance, kinematics) together with the
pose mobility handler used to run agents in GrADyS-SIM NG.

The pure math lives in `core`; `agent.AgentCore` owns the per-agent state
and runs the cycle. It is intended to be imported by a larger project.
"""

from .config import AgentConfiguration, ConfigurationError
from .agent import AgentCore
from .statistics import (
    ZERO_STATISTICS,
    FormationStatistics,
    statistics_to_vector,
    vector_to_statistics,
)
from .orientation import heading_to_quaternion, quaternion_to_heading, wrap_to_pi
from .core import (
    compute_control_law,
    consensus_update,
    integrate,
    moment_jacobian,
    moment_map,
    moment_rates,
)

__version__ = "0.1.0"

__all__ = [
    "AgentConfiguration",
    "AgentCore",
    "ConfigurationError",
    "FormationStatistics",
    "ZERO_STATISTICS",
    "compute_control_law",
    "consensus_update",
    "heading_to_quaternion",
    "integrate",
    "moment_jacobian",
    "moment_map",
    "moment_rates",
    "quaternion_to_heading",
    "statistics_to_vector",
    "vector_to_statistics",
    "wrap_to_pi",
]
