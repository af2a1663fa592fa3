"""Centralized parameter/config constants for the project.

This module is intended to be the single source of truth for shared
configuration parameters used across protocols and other components.
"""

import math

# --------------------------------------------------------------------------------------
# 1) Simulation framework (timing + simulator timers)
# --------------------------------------------------------------------------------------

# Algorithm cycle period (seconds)
SAMPLE_TIME: float = 0.1

# Target statistics broadcast period (seconds).
TARGET_STATS_BROADCAST_PERIOD: float = 1.0

# Timer IDs (string keys used by the simulator)
ALGORITHM_TIMER_STR: str = "algorithm_timer"
TARGET_STATS_BROADCAST_TIMER_STR: str = "target_stats_broadcast_timer"
TARGET_CHANGE_TIMER_STR: str = "target_change_timer"

# Simulation defaults (used by main simulation entrypoints)
SIM_DURATION: float = 120           # Simulation duration (seconds)
SIM_REAL_TIME: bool = False          # Run in real time
SIM_DEBUG: bool = False             # Enable simulator debug mode (and verbose logging)

# --------------------------------------------------------------------------------------
# 2) Communication + visualization (medium + UI)
# --------------------------------------------------------------------------------------

# Communication medium defaults
COMMUNICATION_TRANSMISSION_RANGE: float = 200  # Communication range (meters)
COMMUNICATION_DELAY: float = 0.0               # Communication delay (seconds)
COMMUNICATION_FAILURE_RATE: float = 0.0        # Packet loss probability [0.0, 1.0]

# Visualization defaults (used by main simulation entrypoints)
VIS_ENABLE: bool = False            # Add the visualization handler
VIS_OPEN_BROWSER: bool = True       # Open the visualization in a browser
VIS_UPDATE_RATE: float = 0.1        # Visualization update period (seconds)

# --------------------------------------------------------------------------------------
# 3) Node mobility model (PoseMobility)
# --------------------------------------------------------------------------------------

PM_UPDATE_RATE: float = SAMPLE_TIME  # Mirror agent poses every cycle
PM_ALTITUDE: float = 0.0             # Planar agents fly at constant altitude
PM_SEND_TELEMETRY: bool = True       # Enable telemetry
PM_TELEMETRY_DECIMATION: int = 1     # Send telemetry every update

# --------------------------------------------------------------------------------------
# 4) Swarm formation structure
# --------------------------------------------------------------------------------------

NUM_AGENTS: int = 5                 # Number of agent nodes (ids 0..NUM_AGENTS-1)

# Neighbour sets: agent_id -> tuple of neighbour ids. When None, agents form a
# ring (each agent listens to its predecessor and successor).
NEIGHBOURS = None

# Initial poses: agent_id -> (x, y, theta). Agents not listed are placed at random
# inside [-WORLD_LIMIT, WORLD_LIMIT]^2 with a random heading in (-pi, pi].
INITIAL_POSES: dict = {}

WORLD_LIMIT: float = 10.0           # Half-width of the random placement square (meters)
RANDOM_SEED = None                  # set to an int for reproducibility

# --------------------------------------------------------------------------------------
# 5) Statistics consensus + control law (virtual agent)
# --------------------------------------------------------------------------------------

# The moment map phi(p) = [px, py, pxx, pxy, pyy] fixes both dimensions.
NUMBER_OF_STATS: int = 5
NUMBER_OF_VELOCITIES: int = 2

# Virtual agent velocity saturation (m/s): ||u|| <= VELOCITY_VIRTUAL_THRESHOLD
VELOCITY_VIRTUAL_THRESHOLD: float = 1.0

# Diagonal gain matrices of the control law
#   u = inv(B + J' * LAMBDA * J) * J' * GAMMA * (target - estimate)
DIAG_ELEMENTS_GAMMA = (1.0, 1.0, 1.0, 1.0, 1.0)
DIAG_ELEMENTS_LAMBDA = (0.0, 0.0, 0.0, 0.0, 0.0)
DIAG_ELEMENTS_B = (1.0, 1.0)

# --------------------------------------------------------------------------------------
# 6) LOS guidance + vehicle (physical agent)
# --------------------------------------------------------------------------------------

LOS_DISTANCE_THRESHOLD: float = 1.0  # Speed reference saturates past this distance (m)
SPEED_MIN: float = 0.0               # m/s
SPEED_MAX: float = 1.5               # m/s
STEER_MIN: float = -math.pi / 4      # rad
STEER_MAX: float = math.pi / 4       # rad
K_P_SPEED: float = 1.0
K_I_SPEED: float = 0.5
K_P_STEER: float = 1.0
VEHICLE_LENGTH: float = 0.5          # m

# --------------------------------------------------------------------------------------
# 7) Ground station (target statistics)
# --------------------------------------------------------------------------------------

# Desired formation statistics [m_x, m_y, m_xx, m_xy, m_yy].
TARGET_STATISTICS = (0.0, 0.0, 4.0, 0.0, 4.0)

# Optional scheduled change of the target (set TARGET_CHANGE_TIME to None to disable).
TARGET_CHANGE_TIME = 60.0
TARGET_STATISTICS_NEXT = (2.0, 1.0, 8.0, 2.0, 5.0)

# --------------------------------------------------------------------------------------
# 8) Telemetry
# --------------------------------------------------------------------------------------

AGENT_LOG_CSV_NAME: str = "agent_telemetry.csv"
STATION_LOG_CSV_NAME: str = "station_telemetry.csv"

# Frame names used in pose messages
FRAME_AGENT_PREFIX: str = "agent_"
FRAME_VIRTUAL_SUFFIX: str = "_virtual"
