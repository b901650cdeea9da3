#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
import json
from collections import Counter
from pathlib import Path


def load_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def summarize(rows: list[dict[str, str]]) -> dict[str, object]:
    final = rows[-1]
    states = Counter(r["state"] for r in rows)
    max_wheel = max(max(abs(float(r["left_current"])), abs(float(r["right_current"]))) for r in rows)
    readings = [r["readings"].split() for r in rows if r["readings"]]
    sensor_count = max((len(r) for r in readings), default=0)
    return {
        "samples": len(rows),
        "final_x": float(final["x"]),
        "final_y": float(final["y"]),
        "final_theta": float(final["theta_rad"]),
        "final_state": final["state"],
        "states": dict(states),
        "max_wheel_speed": max_wheel,
        "collisions": sum(int(r["collided"]) for r in rows),
        "sensor_count": sensor_count,
    }


def main() -> None:
    p = argparse.ArgumentParser(description="Analyze simulator trace")
    p.add_argument("trace", type=str)
    p.add_argument("--report", type=str, default=None, help="Optional report.json path")
    args = p.parse_args()

    rows = load_rows(Path(args.trace))
    if not rows:
        print("Empty trace")
        return

    s = summarize(rows)
    print(f"samples: {s['samples']}")
    print(f"final pose: x={s['final_x']:.1f} px, y={s['final_y']:.1f} px, theta={s['final_theta']:.3f} rad")
    print(f"final state: {s['final_state']}")
    print(f"ticks per state: {s['states']}")
    print(f"max wheel speed: {s['max_wheel_speed']:.1f} px/s")
    print(f"collisions: {s['collisions']}")
    print(f"sensors: {s['sensor_count']}")

    if args.report:
        report_path = Path(args.report)
        if report_path.exists():
            report = json.loads(report_path.read_text(encoding="utf-8"))
            print(f"distance: {report.get('distance_px', 0.0):.1f} px")
            if report.get("fault"):
                print(f"fault: {report['fault']}")


if __name__ == "__main__":
    main()
