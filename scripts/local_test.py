"""
Quick local test helper: runs the background removal pipeline on a local
image and writes an RGBA PNG to disk.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

# Ensure project root is importable when running from scripts/
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bgremover import config, registry
from bgremover.model_loader import Session
from bgremover.pipeline import process_image_bytes


def parse_args(settings: config.Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove the background of a local image")
    parser.add_argument("--input", help="Path to the input image")
    parser.add_argument(
        "--output",
        default=settings.output_filename,
        help="Path to write the RGBA PNG (default: %(default)s)",
    )
    parser.add_argument(
        "--model",
        default=settings.default_model,
        choices=registry.all_ids(),
        help="Segmentation model (default: %(default)s)",
    )
    parser.add_argument("--list-models", action="store_true", help="List models and exit")
    return parser.parse_args()


def _print_progress(fraction: float) -> None:
    print(f"\rDownloading model: {fraction * 100:5.1f}%", end="", flush=True)
    if fraction >= 1.0:
        print()


def main() -> None:
    settings = config.get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    args = parse_args(settings)

    if args.list_models:
        for model_id in registry.all_ids():
            descriptor = registry.describe(model_id)
            print(f"{model_id:12} {descriptor.display_name:22} {descriptor.input_resolution}px")
        return

    if not args.input:
        raise SystemExit("--input is required")
    input_path = Path(args.input)
    output_path = Path(args.output)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")

    session = Session()
    try:
        png_bytes = process_image_bytes(
            input_path.read_bytes(),
            args.model,
            session,
            on_progress=_print_progress,
            on_status=print,
            settings=settings,
        )
    finally:
        session.close()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(png_bytes)
    print(f"Wrote RGBA output to {output_path}")


if __name__ == "__main__":
    main()
