"""
Command-line entry point: render one spin to a file.

    python -m spinreel.main 17 --layout european --out spin.gif

Whatever the fallback chain returns is written: the animation, a static PNG
next to the requested path, or the text summary on stdout.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from spinreel.config.settings import get_settings
from spinreel.core.errors import InvalidInput
from spinreel.fallback import TextSummary
from spinreel.service import SpinService
from spinreel.wheel.layouts import parse_number


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render a roulette spin animation")
    parser.add_argument("number", help="Winning number (use 00 for double zero)")
    parser.add_argument("--layout", choices=["european", "american"], help="Wheel layout")
    parser.add_argument("--profile", choices=["compressed", "balanced", "high_fidelity"], help="Quality profile")
    parser.add_argument("--size", type=int, help="Canvas size in pixels")
    parser.add_argument("--fps", type=int, help="Frames per second")
    parser.add_argument("--duration", type=float, help="Spin duration in seconds")
    parser.add_argument("--budget", type=int, dest="byte_budget", help="Byte budget for the output")
    parser.add_argument("--seed", type=int, help="Seed for the cosmetic randomness")
    parser.add_argument("--out", type=Path, default=Path("spin.gif"), help="Output path")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


async def render(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    number = parse_number(args.number)

    async with SpinService() as service:
        representation = await service.request_spin(
            number,
            seed=args.seed,
            layout=args.layout,
            profile=args.profile,
            size=args.size,
            fps=args.fps,
            duration=args.duration,
            byte_budget=args.byte_budget,
        )

    if isinstance(representation, TextSummary):
        print(representation.text)
        return 0

    out: Path = args.out
    if out.suffix.lstrip(".").lower() != representation.format:
        out = out.with_suffix(f".{representation.format}")
    out.write_bytes(representation.buffer)

    logger.info(f"Wrote {out} ({len(representation.buffer)} bytes)")
    print(f"{out}: {representation.summary.text}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    from dotenv import load_dotenv

    # Load environment variables
    load_dotenv()

    args = build_parser().parse_args(argv)
    setup_logging(args.debug or get_settings().debug)

    logger = logging.getLogger(__name__)

    try:
        code = asyncio.run(render(args))
    except InvalidInput as e:
        logger.error(f"Invalid request: {e.message}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = 130
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
