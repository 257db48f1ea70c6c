import sys
import os

# Safety fix for running with pythonw.exe (no console)
if sys.stdout is None:
    sys.stdout = open(os.devnull, "w")
if sys.stderr is None:
    sys.stderr = open(os.devnull, "w")

import argparse
import asyncio
from dataclasses import replace
from typing import Optional

from config import CONNECTION, DEBUG, LYRICS, VERSION
from logging_config import setup_logging, get_logger
from models import LyricSettings
from player_sync import PlayerService
from player_sync.helpers import format_time
from player_sync.state import SONG

logger = get_logger(__name__)

# Terminal view polls at this rate; the service refreshes progress much faster
TERMINAL_INTERVAL = 0.1


def _print_song(field: str, song) -> None:
    print(f"\n♪ {song.author} - {song.title}" + (f" [{song.album}]" if song.album else ""))


async def main(url: str, show_translation: Optional[bool] = None) -> None:
    """
    Run the player service and print each lyric line as it becomes active.
    Runs until cancelled (Ctrl+C).
    """
    lyric_settings = LyricSettings.from_config(LYRICS)
    if show_translation is not None:
        lyric_settings = replace(lyric_settings, show_translation=show_translation)

    service = PlayerService(url=url, settings=lyric_settings)
    unsubscribe = service.store.subscribe(_print_song, fields=[SONG])
    last_printed = None
    was_connected = False

    try:
        async with service:
            while True:
                connected = service.store.is_connected()
                if connected != was_connected:
                    logger.info("Player connected" if connected else "Player disconnected, retrying...")
                    was_connected = connected

                index = service.current_line_index()
                lines = service.store.get_lyric_lines()
                key = (id(lines), index)
                if 0 <= index < len(lines) and key != last_printed:
                    line = lines[index]
                    if line.text.strip():
                        print(f"[{format_time(line.start_time)}] {line.text}")
                        if line.translated_lyric:
                            print(f"         {line.translated_lyric}")
                    last_printed = key

                await asyncio.sleep(TERMINAL_INTERVAL)
    except asyncio.CancelledError:
        logger.info("Main loop cancelled...")
    finally:
        unsubscribe()


def cli() -> None:
    parser = argparse.ArgumentParser(description=f'NowPlaying Sync {VERSION} - synchronized lyrics from a player channel')
    parser.add_argument('--url', default=CONNECTION["url"],
                        help='WebSocket endpoint of the player (default: %(default)s)')
    parser.add_argument('--log-level', default=DEBUG.get("log_level", "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help='Console log level')
    parser.add_argument('--no-translation', action='store_true',
                        help='Do not merge translated lyrics')
    args = parser.parse_args()

    setup_logging(
        console_level=args.log_level,
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "nowplaying.log"),
        max_bytes=DEBUG["log_rotation"]["max_bytes"],
        backup_count=DEBUG["log_rotation"]["backup_count"],
    )

    try:
        logger.info("Starting NowPlaying Sync...")
        asyncio.run(main(args.url, show_translation=False if args.no_translation else None))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt caught in main...")
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli()
