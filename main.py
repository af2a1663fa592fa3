"""Formation statistics control simulation.

This script builds a GrADyS-SIM simulation with NUM_AGENTS agent nodes
running AgentProtocol (statistics consensus + virtual agent control law +
LOS guidance) and one ground station node running StationProtocol, which
broadcasts the target formation statistics.

Agent poses are integrated by the agents themselves and mirrored onto the
simulator nodes by PoseMobilityHandler.

Run:
    python main.py [-v]
"""

import argparse
import logging
import os
import sys

# Suppress websockets handshake warnings
logging.getLogger('websockets').setLevel(logging.CRITICAL)

import pandas as pd

from gradysim.simulator.handler.communication import CommunicationHandler, CommunicationMedium
from gradysim.simulator.handler.timer import TimerHandler
from gradysim.simulator.handler.visualization import VisualizationHandler, VisualizationConfiguration
from gradysim.simulator.simulation import SimulationBuilder, SimulationConfiguration

from config_param import (
    AGENT_LOG_CSV_NAME,
    COMMUNICATION_DELAY,
    COMMUNICATION_FAILURE_RATE,
    COMMUNICATION_TRANSMISSION_RANGE,
    NUM_AGENTS,
    PM_ALTITUDE,
    PM_SEND_TELEMETRY,
    PM_TELEMETRY_DECIMATION,
    PM_UPDATE_RATE,
    SIM_DEBUG,
    SIM_DURATION,
    SIM_REAL_TIME,
    STATION_LOG_CSV_NAME,
    VIS_ENABLE,
    VIS_OPEN_BROWSER,
    VIS_UPDATE_RATE,
)
from formation_control import ConfigurationError
from formation_control.handler import PoseMobilityConfiguration, PoseMobilityHandler
from protocol_agent import TELEMETRY_COLUMNS, AgentProtocol, build_agent_configuration
from protocol_station import StationProtocol


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels (per-cycle DEBUG included) with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")


def validate_agent_configurations() -> bool:
    """Validate every agent configuration before building the simulation."""
    ok = True
    for agent_id in range(NUM_AGENTS):
        try:
            build_agent_configuration(agent_id).validate()
        except ConfigurationError as exc:
            logging.getLogger(__name__).error("Agent %s: invalid configuration: %s", agent_id, exc)
            ok = False
    return ok


def prepare_csv(path: str, columns=None) -> None:
    """Start a fresh telemetry CSV: header only when columns are known, else no file."""
    if columns is None:
        if os.path.exists(path):
            os.remove(path)
        return
    pd.DataFrame(columns=columns).to_csv(path, index=False)


def main(argv=None) -> int:
    """Execute the formation control simulation."""
    parser = argparse.ArgumentParser(description="Formation statistics control simulation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose or SIM_DEBUG)
    logger = logging.getLogger(__name__)

    if not validate_agent_configurations():
        return 1

    script_dir = os.path.dirname(os.path.abspath(__file__))
    agent_csv = os.path.join(script_dir, AGENT_LOG_CSV_NAME)
    station_csv = os.path.join(script_dir, STATION_LOG_CSV_NAME)
    prepare_csv(agent_csv, TELEMETRY_COLUMNS)
    prepare_csv(station_csv)
    os.environ["AGENT_LOG_CSV_PATH"] = agent_csv
    os.environ["STATION_LOG_CSV_PATH"] = station_csv

    builder = SimulationBuilder(
        SimulationConfiguration(
            duration=SIM_DURATION,
            debug=SIM_DEBUG,
            real_time=SIM_REAL_TIME,
        )
    )

    medium = CommunicationMedium(
        transmission_range=COMMUNICATION_TRANSMISSION_RANGE,
        delay=COMMUNICATION_DELAY,
        failure_rate=COMMUNICATION_FAILURE_RATE,
    )
    builder.add_handler(CommunicationHandler(medium))
    builder.add_handler(TimerHandler())
    builder.add_handler(
        PoseMobilityHandler(
            PoseMobilityConfiguration(
                update_rate=PM_UPDATE_RATE,
                altitude=PM_ALTITUDE,
                send_telemetry=PM_SEND_TELEMETRY,
                telemetry_decimation=PM_TELEMETRY_DECIMATION,
            )
        )
    )
    if VIS_ENABLE:
        builder.add_handler(
            VisualizationHandler(
                VisualizationConfiguration(open_browser=VIS_OPEN_BROWSER, update_rate=VIS_UPDATE_RATE)
            )
        )

    # Agents first so that their ids are 0..NUM_AGENTS-1 (the ring topology uses them).
    # Initial positions are overwritten by the agents' own initial poses.
    for _ in range(NUM_AGENTS):
        builder.add_node(AgentProtocol, (0, 0, PM_ALTITUDE))
    builder.add_node(StationProtocol, (0, 0, PM_ALTITUDE))

    simulation = builder.build()
    logger.info("Starting formation control simulation with %d agents (%.1f s)", NUM_AGENTS, SIM_DURATION)
    try:
        simulation.start_simulation()
    except (BrokenPipeError, EOFError) as e:
        logger.debug(f"Ignored visualization shutdown error: {e}")
    finally:
        logger.info("Simulation completed! Telemetry written to %s and %s", agent_csv, station_csv)
    return 0


if __name__ == "__main__":
    sys.exit(main())
