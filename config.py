"""
NowPlaying Sync Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from settings import settings

# ==========================================
# Path Configuration
# ==========================================
ROOT_DIR = Path(__file__).parent

# ==========================================
# Version
# ==========================================
VERSION = "0.4.0"

env_file = ROOT_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)


# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Check Env Var (Highest Priority - good for docker/dev)
    env_val = os.getenv(key.upper().replace('.', '_'))
    if env_val is not None:
        definition = settings._definitions.get(key)
        if definition is not None:
            return definition.validate_and_convert(env_val)
        return env_val

    # 2. Check Settings JSON
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default


# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

DEBUG = {
    "log_file": conf("debug.log_file", "nowplaying.log"),
    "log_level": conf("debug.log_level", "INFO"),
    "log_to_console": conf("debug.log_to_console", True),
    "log_detailed": conf("debug.log_detailed", False),
    "log_rotation": {
        "max_bytes": conf("debug.log_rotation.max_bytes", 1048576),
        "backup_count": conf("debug.log_rotation.backup_count", 10)
    }
}

CONNECTION = {
    "url": conf("connection.url", "ws://127.0.0.1:9863/api/ws/lyric"),
    "http_base": conf("connection.http_base", "http://127.0.0.1:9863"),
    "connect_timeout": conf("connection.connect_timeout", 5.0),
    "heartbeat": conf("connection.heartbeat", 30.0),
    "queue_size": conf("connection.queue_size", 256),
    "reconnect": {
        "initial_delay": conf("connection.reconnect.initial_delay", 2.0),
        "multiplier": conf("connection.reconnect.multiplier", 2.0),
        "max_delay": conf("connection.reconnect.max_delay", 60.0),
    },
}

PROGRESS = {
    # Now Playing reports progress slightly behind the player's real position
    "compensation_ms": conf("progress.compensation_ms", 140),
    "refresh_interval": conf("progress.refresh_interval", 0.016),
    "jitter_tolerance_ms": conf("progress.jitter_tolerance_ms", 0),
}

LYRICS = {
    "show_translation": conf("lyrics.show_translation", True),
    "karaoke_enabled": conf("lyrics.karaoke_enabled", True),
    "show_title_when_no_lyric": conf("lyrics.show_title_when_no_lyric", False),
    "no_lyric_text": conf("lyrics.no_lyric_text", "Instrumental, enjoy the music"),
    "time_offset_ms": conf("lyrics.time_offset_ms", 0),
    "last_line_duration_ms": conf("lyrics.last_line_duration_ms", 5000),
}
