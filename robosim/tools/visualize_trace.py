#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
import math
from pathlib import Path


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Plot a simulator trace over the field")
    p.add_argument("trace", type=str, help="Path to trace.csv")
    p.add_argument("--map", type=str, default=None, help="Field image drawn underneath")
    p.add_argument("--step", type=int, default=25, help="Draw every Nth robot outline")
    p.add_argument("--body-size", type=float, default=50.0)
    p.add_argument("--save", type=str, default=None, help="Write the figure instead of showing it")
    return p.parse_args()


def robot_outline(x: float, y: float, theta: float, size: float) -> tuple[list[float], list[float]]:
    h = 0.5 * size
    local = [(+h, +h), (+h, -h), (-h, -h), (-h, +h)]
    c = math.cos(theta)
    s = math.sin(theta)
    pts = [(x + lx * c - ly * s, y + lx * s + ly * c) for lx, ly in local]
    xs = [p[0] for p in pts] + [pts[0][0]]
    ys = [p[1] for p in pts] + [pts[0][1]]
    return xs, ys


def main() -> None:
    args = parse_args()

    try:
        import matplotlib.pyplot as plt
    except Exception as exc:
        raise SystemExit(f"matplotlib is required for visualization: {exc}")

    with Path(args.trace).open("r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    if not rows:
        raise SystemExit("Trace is empty")

    xs = [float(r["x"]) for r in rows]
    ys = [float(r["y"]) for r in rows]
    th = [float(r["theta_rad"]) for r in rows]

    times = [float(r["time_ms"]) / 1000.0 for r in rows]
    readings = [[float(v) for v in r["readings"].split()] for r in rows]

    fig, (ax, ax_s) = plt.subplots(
        2, 1, figsize=(10, 10), gridspec_kw={"height_ratios": [3, 1]}, constrained_layout=True
    )
    ax.set_title("Robot trace")
    ax.set_xlabel("x (px)")
    ax.set_ylabel("y (px)")

    if args.map:
        ax.imshow(plt.imread(args.map), origin="upper")
    else:
        ax.grid(True, alpha=0.25)
    ax.set_aspect("equal")
    # Screen coordinates: y grows downward.
    if not ax.yaxis_inverted():
        ax.invert_yaxis()

    ax.plot(xs, ys, linewidth=1.3, label="path")

    step = max(1, args.step)
    for i in range(0, len(xs), step):
        bx, by = robot_outline(xs[i], ys[i], th[i], args.body_size)
        ax.plot(bx, by, linewidth=0.8, alpha=0.35)

    bx, by = robot_outline(xs[-1], ys[-1], th[-1], args.body_size)
    ax.plot(bx, by, linewidth=2.0, label="final pose")

    heading_len = args.body_size * 0.55
    hx = xs[-1] + heading_len * math.cos(th[-1])
    hy = ys[-1] + heading_len * math.sin(th[-1])
    ax.plot([xs[-1], hx], [ys[-1], hy], linewidth=2.0, label="heading")

    collisions = [(x, y) for x, y, r in zip(xs, ys, rows) if r["collided"] == "1"]
    if collisions:
        ax.scatter(*zip(*collisions), marker="x", color="red", label="collision")

    ax.legend(loc="upper right")

    ax_s.set_xlabel("time (s)")
    ax_s.set_ylabel("sensor reading")
    for i in range(max((len(r) for r in readings), default=0)):
        series = [(t, r[i]) for t, r in zip(times, readings) if i < len(r)]
        ax_s.plot(*zip(*series), linewidth=1.0, label=f"sensor {i}")
    if readings and readings[0]:
        ax_s.legend(loc="upper right", fontsize="small")

    if args.save:
        fig.savefig(args.save, dpi=120)
    else:
        plt.show()


if __name__ == "__main__":
    main()
