"""Core-only example (no GrADyS-SIM runtime required).

This script drives a single `formation_control.AgentCore` with no
neighbours towards a target statistics vector and prints its estimate,
virtual agent and physical agent every second:

- statistics consensus (pure local drift, no neighbours)
- feedback-linearized virtual agent control law
- LOS guidance and unicycle kinematics

It intentionally does NOT build a GrADyS-SIM NG simulation. For the full
multi-agent simulation use `main.py` at the repository root.

Usage:
    python examples/ex_single_agent.py
"""

from formation_control import AgentConfiguration, AgentCore


def simulate_single_agent():
    """
    Run a lone agent for 20 seconds.
    """
    print("Core-only demo: consensus + control law + LOS guidance + kinematics")

    config = AgentConfiguration(
        sample_time=0.1,
        velocity_virtual_threshold=0.5,
        los_distance_threshold=1.0,
        speed_min=0.0,
        speed_max=1.0,
        steer_min=-0.6,
        steer_max=0.6,
        k_p_speed=1.0,
        k_i_speed=0.5,
        k_p_steer=1.0,
        vehicle_length=0.5,
        initial_pose=(0.0, 0.0, 0.0),
    )
    agent = AgentCore(agent_id=0, config=config)
    # A lone agent can only reach statistics of a single point: p = (1, 2)
    agent.set_target_statistics((1.0, 2.0, 1.0, 2.0, 4.0))

    print(f"Target: {tuple(agent.target_statistics)}")
    print("-" * 78)
    print(f"{'t (s)':>6} | {'estimate (m_x, m_y)':^22} | {'virtual (x, y)':^18} | {'agent (x, y, theta)':^24}")
    print("-" * 78)

    duration = 20.0
    num_steps = int(duration / config.sample_time)

    for step in range(num_steps + 1):
        time = step * config.sample_time
        agent.run_cycle(time)

        if step % max(1, int(round(1.0 / config.sample_time))) == 0:
            est = agent.estimated_statistics
            est_str = f"({est.m_x:6.3f}, {est.m_y:6.3f})"
            virt_str = f"({agent.pose_virtual.x:6.3f}, {agent.pose_virtual.y:6.3f})"
            pose_str = f"({agent.pose.x:6.3f}, {agent.pose.y:6.3f}, {agent.pose.theta:6.3f})"
            print(f"{time:>6.1f} | {est_str:^22} | {virt_str:^18} | {pose_str:^24}")

    print("-" * 78)
    print(f"Final estimate: {tuple(round(v, 3) for v in agent.estimated_statistics)}")
    print(f"Final pose: ({agent.pose.x:.2f}, {agent.pose.y:.2f}, {agent.pose.theta:.2f})")


if __name__ == "__main__":
    simulate_single_agent()
