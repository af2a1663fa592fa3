"""Plot formation telemetry from agent_telemetry.csv and station_telemetry.csv.

Creates:
- one figure per statistic (m_x, m_y, m_xx, m_xy, m_yy) with every agent's
  estimate and, when the station CSV exists, the target and the actual
  formation statistics
- one figure with the physical and virtual trajectories of every agent
- one figure per node_id with the speed/steer commands and LOS distance

Run:
    python plot_telemetry.py

By default, reads the CSVs from the same directory as this script.
"""

from __future__ import annotations

import os

import pandas as pd
import matplotlib.pyplot as plt

STATS = ["m_x", "m_y", "m_xx", "m_xy", "m_yy"]


def main() -> int:
    script_dir = os.path.dirname(os.path.abspath(__file__))
    csv_path = os.path.join(script_dir, "agent_telemetry.csv")
    station_csv_path = os.path.join(script_dir, "station_telemetry.csv")

    if not os.path.exists(csv_path):
        print(f"CSV not found: {csv_path}")
        return 1

    df = pd.read_csv(csv_path)

    required_cols = {"node_id", "timestamp", "x", "y", "x_virtual", "y_virtual", *STATS}
    missing = required_cols - set(df.columns)
    if missing:
        print(f"Missing columns in CSV: {sorted(missing)}")
        return 1

    if df.empty:
        print("CSV is empty.")
        return 0

    # Ensure numeric types and sort by time.
    df = df.copy()
    df["node_id"] = pd.to_numeric(df["node_id"], errors="coerce").astype("Int64")
    for col in required_cols - {"node_id"}:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.dropna(subset=sorted(required_cols)).sort_values("timestamp")

    # Optional station telemetry: target and actual statistics over time.
    station = None
    if os.path.exists(station_csv_path):
        station = pd.read_csv(station_csv_path)
        if station.empty or "timestamp" not in station.columns:
            station = None
        else:
            station = station.drop_duplicates(subset="timestamp").sort_values("timestamp")

    node_ids = sorted(df["node_id"].unique())
    if len(node_ids) == 0:
        print("No valid rows to plot.")
        return 0

    # Statistics: estimates vs target/actual
    fig, axes = plt.subplots(len(STATS), 1, sharex=True, figsize=(10, 12))
    fig.suptitle("Formation statistics")
    for ax, stat in zip(axes, STATS):
        for node_id in node_ids:
            df_node = df[df["node_id"] == node_id]
            ax.plot(df_node["timestamp"], df_node[stat], linewidth=1.0, label=f"agent {int(node_id)}")
        if station is not None:
            if f"target_{stat}" in station.columns:
                ax.step(station["timestamp"], station[f"target_{stat}"], where="post", color="k",
                        linestyle="--", linewidth=1.5, label="target")
            if f"actual_{stat}" in station.columns:
                ax.plot(station["timestamp"], station[f"actual_{stat}"], color="0.35", linewidth=1.5, label="actual")
        ax.set_ylabel(stat)
        ax.grid(True, alpha=0.3)
    axes[0].legend(loc="best", fontsize=8)
    axes[-1].set_xlabel("timestamp (s)")
    fig.tight_layout()

    # Trajectories
    fig, ax = plt.subplots(figsize=(8, 8))
    fig.suptitle("Trajectories (solid: physical, dotted: virtual)")
    for node_id in node_ids:
        df_node = df[df["node_id"] == node_id]
        line, = ax.plot(df_node["x"], df_node["y"], linewidth=1.2, label=f"agent {int(node_id)}")
        ax.plot(df_node["x_virtual"], df_node["y_virtual"], linestyle=":", color=line.get_color(), linewidth=1.0)
        ax.plot(df_node["x"].iloc[0], df_node["y"].iloc[0], "o", color=line.get_color())
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.set_aspect("equal", adjustable="datalim")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.tight_layout()

    # Per-node commands
    has_commands = {"speed_command", "steer_command", "los_distance"} <= set(df.columns)
    if has_commands:
        for node_id in node_ids:
            df_node = df[df["node_id"] == node_id]

            fig, (ax_v, ax_d, ax_l) = plt.subplots(3, 1, sharex=True, figsize=(10, 8))
            fig.suptitle(f"Guidance - node_id={int(node_id)}")

            ax_v.plot(df_node["timestamp"], df_node["speed_command"], linewidth=1.0)
            ax_v.set_ylabel("speed (m/s)")
            ax_v.grid(True, alpha=0.3)

            ax_d.plot(df_node["timestamp"], df_node["steer_command"], linewidth=1.0)
            ax_d.set_ylabel("steer (rad)")
            ax_d.axhline(0.0, color="k", linewidth=0.8, alpha=0.4)
            ax_d.grid(True, alpha=0.3)

            ax_l.plot(df_node["timestamp"], df_node["los_distance"], linewidth=1.0)
            ax_l.set_ylabel("LOS distance (m)")
            ax_l.set_xlabel("timestamp (s)")
            ax_l.grid(True, alpha=0.3)

            fig.tight_layout()

    plt.show()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
