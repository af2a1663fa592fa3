"""
Tests for the agent and ground station protocols and the pose mobility handler.

The protocols are driven through a fake provider that records scheduled
timers and broadcast messages instead of running a GrADyS-SIM simulation.
"""

import json
import math
from types import SimpleNamespace

import pandas as pd
import pytest

from config_param import ALGORITHM_TIMER_STR, SAMPLE_TIME, TARGET_STATS_BROADCAST_TIMER_STR, TARGET_STATISTICS
from formation_control import FormationStatistics
from formation_control.handler import PoseMobilityConfiguration, PoseMobilityHandler
from protocol_agent import AgentProtocol, ring_neighbours
from protocol_messages import AgentPoseStamped, FormationStatisticsStamped, TargetStatistics
from protocol_station import StationProtocol, formation_statistics


class FakeProvider:
    def __init__(self, node_id, time=0.0, handlers=None):
        self.node_id = node_id
        self.time = time
        self.handlers = handlers or {}
        self.timers = []
        self.sent = []

    def get_id(self):
        return self.node_id

    def current_time(self):
        return self.time

    def schedule_timer(self, timer, timestamp):
        self.timers.append((timer, timestamp))

    def send_communication_command(self, command):
        self.sent.append(json.loads(command.message))


def make_protocol(cls, provider):
    protocol = cls()
    protocol.provider = provider
    protocol.initialize()
    return protocol


@pytest.fixture(autouse=True)
def no_csv(monkeypatch):
    monkeypatch.delenv("AGENT_LOG_CSV_PATH", raising=False)
    monkeypatch.delenv("STATION_LOG_CSV_PATH", raising=False)


class TestRingTopology:
    def test_predecessor_and_successor(self):
        assert ring_neighbours(0, 5) == (1, 4)
        assert ring_neighbours(2, 5) == (1, 3)

    def test_two_agents(self):
        assert ring_neighbours(0, 2) == (1,)

    def test_single_agent(self):
        assert ring_neighbours(0, 1) == ()


class TestAgentProtocol:
    """Test AgentProtocol wiring around AgentCore."""

    def test_initialize_schedules_cycle(self):
        provider = FakeProvider(0, time=2.0)
        protocol = make_protocol(AgentProtocol, provider)
        assert provider.timers == [(ALGORITHM_TIMER_STR, pytest.approx(2.0 + SAMPLE_TIME))]
        assert protocol.core.neighbor_buffer.neighbours == frozenset({1, 4})

    def test_cycle_broadcasts_estimate_and_poses(self):
        provider = FakeProvider(0)
        protocol = make_protocol(AgentProtocol, provider)
        provider.time = SAMPLE_TIME
        protocol.handle_timer(ALGORITHM_TIMER_STR)

        types = [message["type"] for message in provider.sent]
        assert types == [FormationStatisticsStamped.TYPE, AgentPoseStamped.TYPE, AgentPoseStamped.TYPE]
        assert provider.sent[0]["seq"] == 1
        assert [m["frame_id"] for m in provider.sent[1:]] == ["agent_0", "agent_0_virtual"]
        assert provider.timers[-1] == (ALGORITHM_TIMER_STR, pytest.approx(2 * SAMPLE_TIME))

    def test_estimate_sequence_increments(self):
        provider = FakeProvider(0)
        protocol = make_protocol(AgentProtocol, provider)
        protocol.handle_timer(ALGORITHM_TIMER_STR)
        protocol.handle_timer(ALGORITHM_TIMER_STR)
        seqs = [m["seq"] for m in provider.sent if m["type"] == FormationStatisticsStamped.TYPE]
        assert seqs == [1, 2]

    def test_neighbour_estimate_buffered(self):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        message = FormationStatisticsStamped(agent_id=1, seq=1, stamp=0.0, stats=(1, 1, 1, 1, 1))
        protocol.handle_packet(message.to_json())
        assert len(protocol.core.neighbor_buffer) == 1

    def test_non_neighbour_estimate_ignored(self):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        message = FormationStatisticsStamped(agent_id=2, seq=1, stamp=0.0, stats=(1, 1, 1, 1, 1))
        protocol.handle_packet(message.to_json())
        assert len(protocol.core.neighbor_buffer) == 0

    def test_target_applied_in_order(self):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        protocol.handle_packet(TargetStatistics(station_id=5, seq=2, stats=(1, 1, 1, 1, 1)).to_json())
        assert protocol.core.target_statistics == FormationStatistics(1.0, 1.0, 1.0, 1.0, 1.0)

        # Older target arriving late is discarded
        protocol.handle_packet(TargetStatistics(station_id=5, seq=1, stats=(2, 2, 2, 2, 2)).to_json())
        assert protocol.core.target_statistics == FormationStatistics(1.0, 1.0, 1.0, 1.0, 1.0)

    def test_unchanged_target_not_reapplied(self, caplog):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        protocol.handle_packet(TargetStatistics(station_id=5, seq=1, stats=(1, 1, 1, 1, 1)).to_json())
        caplog.clear()
        with caplog.at_level("INFO"):
            protocol.handle_packet(TargetStatistics(station_id=5, seq=2, stats=(1, 1, 1, 1, 1)).to_json())
        assert "has been changed" not in caplog.text
        assert protocol.last_seq_target == 2

    def test_malformed_packets_ignored(self, caplog):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        with caplog.at_level("WARNING"):
            protocol.handle_packet("not json")
            protocol.handle_packet("[1, 2]")
            protocol.handle_packet(json.dumps({"type": FormationStatisticsStamped.TYPE, "agent_id": 1}))
        assert len(protocol.core.neighbor_buffer) == 0
        warnings = [r for r in caplog.records if r.levelname == "WARNING"]
        assert len(warnings) == 3

    @pytest.mark.parametrize("agent_id", ["abc", None, [1]])
    def test_estimate_with_bad_agent_id_dropped(self, agent_id, caplog):
        """A decodable estimate with an unusable sender id is dropped with a warning."""
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        packet = json.dumps(
            {
                "type": FormationStatisticsStamped.TYPE,
                "agent_id": agent_id,
                "seq": 1,
                "stamp": 0.0,
                "stats": {"m_x": 1.0, "m_y": 1.0, "m_xx": 1.0, "m_xy": 1.0, "m_yy": 1.0},
            }
        )
        with caplog.at_level("WARNING"):
            protocol.handle_packet(packet)
        assert len(protocol.core.neighbor_buffer) == 0
        assert "failed to decode FormationStatisticsStamped" in caplog.text

    def test_estimate_with_bad_statistic_dropped(self, caplog):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        packet = json.dumps(
            {
                "type": FormationStatisticsStamped.TYPE,
                "agent_id": 1,
                "seq": 1,
                "stamp": 0.0,
                "stats": {"m_x": "abc", "m_y": 1.0, "m_xx": 1.0, "m_xy": 1.0, "m_yy": 1.0},
            }
        )
        with caplog.at_level("WARNING"):
            protocol.handle_packet(packet)
        assert len(protocol.core.neighbor_buffer) == 0

    @pytest.mark.parametrize("seq", ["abc", None])
    def test_target_with_bad_seq_dropped(self, seq, caplog):
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        packet = json.dumps(
            {
                "type": TargetStatistics.TYPE,
                "station_id": 5,
                "seq": seq,
                "stats": {"m_x": 1.0, "m_y": 1.0, "m_xx": 1.0, "m_xy": 1.0, "m_yy": 1.0},
            }
        )
        with caplog.at_level("WARNING"):
            protocol.handle_packet(packet)
        assert protocol.last_seq_target == -1
        assert protocol.core.target_statistics == FormationStatistics()
        assert "failed to decode TargetStatistics" in caplog.text

    def test_non_finite_neighbour_estimate_does_not_poison_state(self):
        """NaN/Infinity literals accepted by json are dropped before the consensus."""
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        packet = json.dumps(
            {
                "type": FormationStatisticsStamped.TYPE,
                "agent_id": 1,
                "seq": 1,
                "stamp": 0.0,
                "stats": {"m_x": math.nan, "m_y": math.inf, "m_xx": 1.0, "m_xy": 1.0, "m_yy": 1.0},
            }
        )
        protocol.handle_packet(packet)
        assert len(protocol.core.neighbor_buffer) == 0
        for _ in range(20):
            protocol.handle_timer(ALGORITHM_TIMER_STR)
        core = protocol.core
        assert all(math.isfinite(v) for v in core.estimated_statistics)
        assert math.isfinite(core.pose.x) and math.isfinite(core.pose.y) and math.isfinite(core.pose.theta)

    def test_pose_handler_synchronized(self):
        handler = PoseMobilityHandler(PoseMobilityConfiguration(update_rate=SAMPLE_TIME))
        provider = FakeProvider(0, handlers={"PoseMobilityHandler": handler})
        protocol = make_protocol(AgentProtocol, provider)
        pose = protocol.core.pose
        assert handler.get_node_pose(0) == pytest.approx((pose.x, pose.y, pose.theta))

    def test_telemetry_written_on_finish(self, tmp_path, monkeypatch):
        csv_path = tmp_path / "agent.csv"
        monkeypatch.setenv("AGENT_LOG_CSV_PATH", str(csv_path))
        protocol = make_protocol(AgentProtocol, FakeProvider(0))
        protocol.handle_timer(ALGORITHM_TIMER_STR)
        protocol.handle_telemetry(None)
        protocol.finish()

        df = pd.read_csv(csv_path)
        assert len(df) == 1
        assert df.loc[0, "node_id"] == 0
        assert df.loc[0, "x"] == pytest.approx(protocol.core.pose.x)


class TestStationProtocol:
    """Test StationProtocol broadcasting and recording."""

    def test_initialize_schedules_broadcast_now(self):
        provider = FakeProvider(5, time=1.0)
        make_protocol(StationProtocol, provider)
        assert (TARGET_STATS_BROADCAST_TIMER_STR, 1.0) in provider.timers

    def test_broadcast_target(self):
        provider = FakeProvider(5)
        protocol = make_protocol(StationProtocol, provider)
        protocol.handle_timer(TARGET_STATS_BROADCAST_TIMER_STR)
        protocol.handle_timer(TARGET_STATS_BROADCAST_TIMER_STR)
        targets = [m for m in provider.sent if m["type"] == TargetStatistics.TYPE]
        assert [m["seq"] for m in targets] == [1, 2]
        assert tuple(targets[0]["stats"].values()) == pytest.approx(TARGET_STATISTICS)

    def test_records_estimates_and_poses(self):
        provider = FakeProvider(5)
        protocol = make_protocol(StationProtocol, provider)
        protocol.handle_packet(FormationStatisticsStamped(agent_id=0, seq=1, stamp=0.0, stats=(1, 0, 1, 0, 0)).to_json())
        protocol.handle_packet(
            AgentPoseStamped(agent_id=0, frame_id="agent_0", stamp=0.0, position=(1.0, 0.0), theta=0.0).to_json()
        )
        protocol.handle_packet(
            AgentPoseStamped(agent_id=0, frame_id="agent_0_virtual", stamp=0.0, position=(2.0, 0.0), theta=0.0).to_json()
        )
        assert protocol.estimates[0][0] == FormationStatistics(1.0, 0.0, 1.0, 0.0, 0.0)
        assert protocol.poses[0][0].position == (1.0, 0.0)
        assert protocol.virtual_poses[0][0].position == (2.0, 0.0)

        protocol.record_snapshot(0.0)
        row = protocol._telemetry_rows[-1]
        assert row["agent_id"] == 0
        assert row["actual_m_xx"] == pytest.approx(1.0)
        assert row["x_virtual"] == pytest.approx(2.0)


class TestStationMalformedPackets:
    """Test that the station drops packets with unusable fields."""

    def test_estimate_with_bad_agent_id(self, caplog):
        protocol = make_protocol(StationProtocol, FakeProvider(5))
        packet = json.dumps(
            {
                "type": FormationStatisticsStamped.TYPE,
                "agent_id": "abc",
                "seq": 1,
                "stamp": 0.0,
                "stats": {"m_x": 1.0, "m_y": 1.0, "m_xx": 1.0, "m_xy": 1.0, "m_yy": 1.0},
            }
        )
        with caplog.at_level("WARNING"):
            protocol.handle_packet(packet)
        assert protocol.estimates == {}
        assert "failed to decode FormationStatisticsStamped" in caplog.text

    @pytest.mark.parametrize(
        "field, value",
        [("agent_id", None), ("stamp", "abc"), ("position", {"x": "abc", "y": 0.0, "z": 0.0})],
    )
    def test_pose_with_bad_field(self, field, value, caplog):
        protocol = make_protocol(StationProtocol, FakeProvider(5))
        data = json.loads(
            AgentPoseStamped(agent_id=0, frame_id="agent_0", stamp=0.0, position=(1.0, 0.0), theta=0.0).to_json()
        )
        data[field] = value
        with caplog.at_level("WARNING"):
            protocol.handle_packet(json.dumps(data))
        assert protocol.poses == {}
        assert "failed to decode AgentPoseStamped" in caplog.text


class TestFormationStatistics:
    def test_mean_of_moments(self):
        stats = formation_statistics([(1.0, 0.0), (-1.0, 0.0), (0.0, 2.0), (0.0, -2.0)])
        assert tuple(stats) == pytest.approx((0.0, 0.0, 0.5, 0.0, 2.0))

    def test_empty(self):
        assert formation_statistics([]) == FormationStatistics()


class FakeEventLoop:
    def __init__(self):
        self.current_time = 0.0
        self.events = []

    def schedule_event(self, timestamp, callback, context=""):
        self.events.append((timestamp, callback))


class TestPoseMobilityHandler:
    """Test mirroring of agent poses onto simulator nodes."""

    def make_handler(self, **kwargs):
        handler = PoseMobilityHandler(PoseMobilityConfiguration(update_rate=0.1, altitude=5.0, **kwargs))
        loop = FakeEventLoop()
        received = []
        node = SimpleNamespace(
            id=0,
            position=(0.0, 0.0, 0.0),
            protocol_encapsulator=SimpleNamespace(handle_telemetry=received.append),
        )
        handler.inject(loop)
        handler.register_node(node)
        handler.initialize()
        return handler, loop, node, received

    def test_update_moves_node(self):
        handler, loop, node, _ = self.make_handler()
        handler.set_pose(0, (1.0, 2.0, math.pi / 2))
        _, update = loop.events.pop(0)
        update()
        assert node.position == (1.0, 2.0, 5.0)
        assert handler.get_node_position(0) == (1.0, 2.0, 5.0)
        assert handler.get_node_pose(0) == (1.0, 2.0, math.pi / 2)

    def test_update_reschedules_and_emits_telemetry(self):
        handler, loop, node, received = self.make_handler()
        _, update = loop.events.pop(0)
        update()
        timestamps = [t for t, _ in loop.events]
        assert pytest.approx(0.1) in timestamps
        # telemetry is delivered through a scheduled event
        for t, callback in list(loop.events):
            if t == 0.0:
                callback()
        assert len(received) == 1
        assert received[0].current_position == (0.0, 0.0, 5.0)

    def test_telemetry_decimation(self):
        handler, loop, node, received = self.make_handler(telemetry_decimation=2)
        _, update = loop.events.pop(0)
        update()
        assert all(t != 0.0 for t, _ in loop.events)
