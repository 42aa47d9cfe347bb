"""Command line entry point: assemble already-captured photos into a panorama."""
from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from .config import CaptureConfig, load_capture_config
from .errors import FrameDecodeFailed
from .io.frames import load_frame_file, save_panorama
from .io.panorama_assembly import assemble_panorama
from .logging import configure_logging
from .models.capture_session import CapturedFrame


def parse_photo_argument(value: str, index: int, default_step: float) -> Tuple[Path, float]:
    """Split ``PATH[@AZIMUTH]``; a missing azimuth follows the argument order."""
    path_text, sep, azimuth_text = value.rpartition("@")
    if not sep:
        return Path(value), index * default_step
    try:
        azimuth = float(azimuth_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid azimuth in {value!r}") from exc
    return Path(path_text), azimuth


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="panoguide",
        description="Composite overlapping photos into a panorama, ordered by azimuth.",
    )
    parser.add_argument("photos", nargs="+", help="Photo path, optionally suffixed with @AZIMUTH in degrees")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Output image path")
    parser.add_argument("--config", type=Path, help="JSON capture config")
    parser.add_argument("--overlap", type=float, help="Overlap fraction between neighbours")
    parser.add_argument("--max-height", type=int, help="Maximum panorama height in pixels")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the offline assembler."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    try:
        config = load_capture_config(args.config) if args.config else CaptureConfig()
        overrides = {}
        if args.overlap is not None:
            overrides["overlap_fraction"] = args.overlap
        if args.max_height is not None:
            overrides["max_panorama_height_px"] = args.max_height
        if overrides:
            config = dataclasses.replace(config, **overrides)
        default_step = 360.0 / max(len(args.photos), 1)
        frames = []
        for index, value in enumerate(args.photos):
            path, azimuth = parse_photo_argument(value, index, default_step)
            frames.append(CapturedFrame(load_frame_file(path), azimuth, 0.0, sequence=index))
    except (argparse.ArgumentTypeError, FileNotFoundError, FrameDecodeFailed, ValueError) as exc:
        logger.error("{}", exc)
        return 2

    result = assemble_panorama(
        frames,
        max_height=config.max_panorama_height_px,
        overlap_fraction=config.overlap_fraction,
    )
    if not result.ok:
        logger.error("{}", result.message)
        return 1
    save_panorama(args.output, result.image)
    logger.info("{}", result.message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
