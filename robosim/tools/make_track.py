#!/usr/bin/env python3
"""Write a rectangular line-following track image for ``--map``."""
from __future__ import annotations

import argparse
from pathlib import Path

from robosim.engine.field import EnvironmentField


def build_track(
    width: int = 800,
    height: int = 600,
    margin: int = 125,
    line_px: int = 8,
    background: tuple[int, int, int] = (240, 240, 240),
    line: tuple[int, int, int] = (0, 0, 0),
) -> EnvironmentField:
    """Rectangular loop whose top-left corner sits on the default start pose."""
    field = EnvironmentField.blank(width, height, color=background)
    half = line_px // 2
    right = width - margin
    bottom = height - margin
    field = field.with_rect(margin - half, margin - half, right - margin + line_px, line_px, line)
    field = field.with_rect(margin - half, bottom - half, right - margin + line_px, line_px, line)
    field = field.with_rect(margin - half, margin - half, line_px, bottom - margin + line_px, line)
    field = field.with_rect(right - half, margin - half, line_px, bottom - margin + line_px, line)
    return field


def main() -> None:
    p = argparse.ArgumentParser(description="Generate a line-following track")
    p.add_argument("out", type=str, help="Output image (png/bmp)")
    p.add_argument("--width", type=int, default=800)
    p.add_argument("--height", type=int, default=600)
    p.add_argument("--margin", type=int, default=125)
    p.add_argument("--line", type=int, default=8, help="Line thickness in px")
    args = p.parse_args()

    field = build_track(args.width, args.height, args.margin, args.line)
    field.save(Path(args.out))
    print(f"Track: {args.out} ({field.width}x{field.height})")


if __name__ == "__main__":
    main()
