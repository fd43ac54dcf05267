"""
Room Recorder - Main entry point.

1. Load config.yaml and merge command-line options
2. Set up logging
3. Record every room concurrently (or monitor them until they go live)
4. Print a per-room summary and exit with a status reflecting failures
"""

import argparse
import asyncio
import os
import sys
from typing import Dict, List, Optional

from .config import apply_overrides, load_config, validate_room_name
from .errors import EXIT_CONFIG_ERROR, EXIT_INTERRUPTED, ConfigError, exit_code_for
from .logger import get_logger, setup_logging
from .recorder import RecordingResult, RoomState
from .supervisor import Supervisor, exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='roomrecorder',
        description='Record live HLS room streams to .ts files'
    )
    parser.add_argument('-r', '--room', dest='rooms', action='append', default=[], metavar='ROOM',
                        help='Room to record. Can be given multiple times.')
    parser.add_argument('-o', '--output', metavar='DIR', help='Output directory for recordings')
    parser.add_argument('-m', '--monitor', action='store_true',
                        help='Wait for rooms to come online and record automatically')
    parser.add_argument('--resolution', type=int, metavar='HEIGHT', help='Target resolution (e.g. 1080, 720)')
    parser.add_argument('--fps', type=int, metavar='FPS', help='Target framerate (30 or 60)')
    parser.add_argument('--cookies', metavar='COOKIES', default=os.environ.get('CB_COOKIES'),
                        help='Cookie string for private streams (env CB_COOKIES)')
    parser.add_argument('--user-agent', metavar='UA', help='Custom User-Agent string')
    parser.add_argument('--max-duration', type=int, metavar='MINUTES',
                        help='Split files after N minutes (0 = unlimited)')
    parser.add_argument('--max-filesize', type=int, metavar='MB',
                        help='Split files after N MB (0 = unlimited)')
    parser.add_argument('--check-interval', type=int, metavar='SECONDS',
                        help='Seconds between liveness checks in monitor mode')
    parser.add_argument('-c', '--config', default='config.yaml', help='Path to config file')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only log errors')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser


def log_summary(results: Dict[str, RecordingResult]) -> None:
    """Log per-room stats and the session totals."""
    logger = get_logger('app')

    for room, result in results.items():
        logger.info("=" * 50)
        logger.info(f"Recording stats for {room}: {result.state.value}")
        logger.info(f"  Segments:    {result.stats.segments_downloaded}")
        logger.info(f"  Total size:  {result.size_formatted}")
        logger.info(f"  Duration:    {result.duration_formatted}")
        logger.info(f"  Files:       {result.stats.files_created}")
        if result.stats.gaps:
            logger.info(f"  Gaps:        {len(result.stats.gaps)}")
        if result.error:
            logger.info(f"  Error:       {result.error}")

    failed = sum(1 for r in results.values() if r.state == RoomState.FAILED)
    logger.info("=" * 50)
    logger.info(f"Total rooms: {len(results)}, successful: {len(results) - failed}, failed: {failed}")


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return exit_code_for(e)

    apply_overrides(
        config,
        rooms=args.rooms,
        output_directory=args.output,
        resolution=args.resolution,
        framerate=args.fps,
        cookies=args.cookies,
        user_agent=args.user_agent,
        max_duration_minutes=args.max_duration,
        max_filesize_mb=args.max_filesize,
        check_interval_seconds=args.check_interval
    )

    level = config.logging.level
    if args.debug:
        level = "DEBUG"
    elif args.quiet:
        level = "ERROR"
    setup_logging(
        level=level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )
    logger = get_logger('app')

    rooms = config.monitor.rooms
    if not rooms:
        logger.error("No rooms specified. Use -r <room> or configure monitor.rooms in config.yaml")
        return EXIT_CONFIG_ERROR

    try:
        for room in rooms:
            validate_room_name(room)
    except ConfigError as e:
        logger.error(str(e))
        return exit_code_for(e)

    supervisor = Supervisor(config)
    supervisor.install_signal_handlers()

    mode = "monitor" if args.monitor else "direct"
    logger.info(f"Starting Room Recorder ({mode} mode): {', '.join(rooms)}")

    results = await supervisor.run(rooms, monitor=args.monitor)

    log_summary(results)
    return exit_code(results)


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(EXIT_INTERRUPTED)


if __name__ == '__main__':
    run()
