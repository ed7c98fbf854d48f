#!/usr/bin/env python3
"""
Generate the OpenAPI schema JSON of the render gateway.

Usage:
    python scripts/generate_openapi.py [--out <path>]

If --out is not provided, defaults to docs/openapi.json relative to repo root.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.render_controller import app

ROOT = Path(__file__).resolve().parents[1]
DEFAULT_OUT = ROOT / "docs" / "openapi.json"


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate OpenAPI JSON from the render gateway app")
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT, help="Output file path for openapi.json")
    args = parser.parse_args()

    out_path: Path = args.out
    out_path.parent.mkdir(parents=True, exist_ok=True)

    # Stable output for diffs
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(app.openapi(), f, ensure_ascii=False, indent=2, sort_keys=True)
        f.write("\n")


if __name__ == "__main__":
    main()
