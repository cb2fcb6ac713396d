"""
Command-line interface for the Story Player.
"""

import argparse
import asyncio
import json
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import PlayerConfig, TIMING_POLICIES


def check_dependencies(ffplay_bin: str = "ffplay") -> bool:
    """Check that the audio player is available."""
    try:
        result = subprocess.run([ffplay_bin, "-version"], capture_output=True, text=True)
        if result.returncode != 0:
            print(f"WARNING: {ffplay_bin} is not working correctly, subtitles only.")
            return False
    except FileNotFoundError:
        print(f"WARNING: {ffplay_bin} is not installed, subtitles only. "
              f"Install ffmpeg with your package manager for audio.")
        return False
    return True


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="story-player",
        description="Story Player: browse AI-generated illustrated stories with narrated subtitles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m story_player
  python -m story_player --api-url http://localhost:3000 --lang zh
  python -m story_player --timing timepoints --no-wrap
  python -m story_player --cache-stats
  python -m story_player --clear-cache  # Clear cached data
        """
    )

    # Backend
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Story backend base URL (default: $STORY_API_URL or http://localhost:3000)"
    )
    parser.add_argument(
        "--lang",
        type=str,
        default="en",
        help="Story language passed to the backend (default: en)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Request timeout in seconds (default: 60)"
    )

    # Playback options
    parser.add_argument(
        "--timing",
        type=str,
        default="uniform",
        choices=list(TIMING_POLICIES),
        help="Word highlight timing (default: uniform)"
    )
    parser.add_argument(
        "--no-wrap",
        action="store_false",
        dest="wrap",
        help="Stop at the last story instead of wrapping to the first"
    )
    parser.add_argument(
        "--require-gesture",
        action="store_true",
        help="Hold audio until the first command, like a browser autoplay gate"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=4,
        help="Stories per batch (default: 4)"
    )

    # Cache options
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=Path("cache"),
        help="Cache directory (default: cache/)"
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Clear all cached data before running"
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching (request everything again)"
    )
    parser.add_argument(
        "--clear-images",
        action="store_true",
        help="Delete cached images before running (keeps speech and story ideas)"
    )
    parser.add_argument(
        "--cache-stats",
        action="store_true",
        help="Print cache statistics and exit"
    )

    # Misc options
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser.parse_args(argv)


def args_to_config(args: argparse.Namespace) -> PlayerConfig:
    """Convert parsed arguments to PlayerConfig."""
    return PlayerConfig(
        api_url=args.api_url,
        lang=args.lang,
        request_timeout=args.timeout,
        cache_dir=args.cache_dir,
        use_cache=not args.no_cache,
        clear_cache=args.clear_cache,
        batch_size=args.batch_size,
        timing_policy=args.timing,
        wrap_at_end=args.wrap,
        require_gesture_unlock=args.require_gesture,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)

    try:
        config = args_to_config(args)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    # Import the app here to avoid slow imports on --help
    from .app import StoryPlayerApp
    from .core.errors import StoryPlayerError

    if args.cache_stats:
        app = StoryPlayerApp(config)
        print(json.dumps(app.get_cache_stats(), indent=2))
        return 0

    check_dependencies(config.ffplay_bin)

    try:
        app = StoryPlayerApp(config)
        if args.clear_images:
            app.cache.clear_images()
        return asyncio.run(app.run_terminal())
    except KeyboardInterrupt:
        return 130
    except StoryPlayerError as e:
        print(f"ERROR: Player failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
