"""
NowPlaying Sync Settings Manager
Handles dynamic configuration management using settings.json
"""

import json
import shutil
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass
from logging_config import get_logger

logger = get_logger(__name__)

ROOT_DIR = Path(__file__).parent

# Allow overriding the settings file location via environment variable
SETTINGS_FILE = Path(os.getenv("NOWPLAYING_SETTINGS_FILE", str(ROOT_DIR / "settings.json")))


@dataclass
class Setting:
    """Represents a single configurable setting"""
    name: str
    type: type
    default: Any
    requires_restart: bool = False
    category: Optional[str] = None
    description: Optional[str] = None
    widget_type: str = "text"  # text, number, slider, switch, select
    options: Optional[list] = None  # For select
    min_val: Optional[float] = None  # For slider/number
    max_val: Optional[float] = None  # For slider/number

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool:
                if isinstance(value, str):
                    return value.lower() in ('true', '1', 'yes', 'on')
                return bool(value)

            converted = self.type(value)
            if self.type in (int, float):
                # Out-of-range numbers fall back to the default
                if self.min_val is not None and converted < self.min_val:
                    return self.default
                if self.max_val is not None and converted > self.max_val:
                    return self.default
            if self.options and converted not in self.options:
                return self.default
            return converted
        except (ValueError, TypeError):
            return self.default


class SettingsManager:
    def __init__(self, settings_file: Path = SETTINGS_FILE):
        self._settings: Dict[str, Any] = {}
        self.settings_file = Path(settings_file)

        # Define all available settings
        self._definitions = {
            # Debug
            "debug.log_file": Setting("Log File", str, "nowplaying.log", True, "Debug", "Log file name"),
            "debug.log_level": Setting("Log Level", str, "INFO", True, "Debug", "Logging verbosity", "select", options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_to_console": Setting("Log to Console", bool, True, True, "Debug", "Print logs to terminal", "switch"),
            "debug.log_detailed": Setting("Detailed Logging", bool, False, True, "Debug", "Write DEBUG records to the log file", "switch"),
            "debug.log_rotation.max_bytes": Setting("Max Log Size", int, 1048576, True, "Debug", "Max log file size (bytes)", "number", min_val=1024),
            "debug.log_rotation.backup_count": Setting("Log Backups", int, 10, True, "Debug", "Number of backups to keep", "number", min_val=0, max_val=100),

            # Connection
            "connection.url": Setting("Channel URL", str, "ws://127.0.0.1:9863/api/ws/lyric", True, "Connection", "WebSocket endpoint of the player"),
            "connection.http_base": Setting("HTTP Base", str, "http://127.0.0.1:9863", True, "Connection", "Base URL for HTTP helpers (cover conversion)"),
            "connection.connect_timeout": Setting("Connect Timeout", float, 5.0, False, "Connection", "Handshake timeout (s)", "slider", min_val=0.5, max_val=60.0),
            "connection.heartbeat": Setting("Heartbeat", float, 30.0, False, "Connection", "WebSocket ping interval (s)", "slider", min_val=1.0, max_val=300.0),
            "connection.reconnect.initial_delay": Setting("Reconnect Delay", float, 2.0, False, "Connection", "First reconnect delay (s)", "slider", min_val=0.1, max_val=60.0),
            "connection.reconnect.multiplier": Setting("Backoff Multiplier", float, 2.0, False, "Connection", "Reconnect delay growth factor", "slider", min_val=1.0, max_val=10.0),
            "connection.reconnect.max_delay": Setting("Max Reconnect Delay", float, 60.0, False, "Connection", "Reconnect delay cap (s)", "slider", min_val=1.0, max_val=3600.0),
            "connection.queue_size": Setting("Frame Queue", int, 256, True, "Connection", "Inbound frame queue bound", "number", min_val=1, max_val=65536),

            # Progress
            "progress.compensation_ms": Setting("Progress Compensation", int, 140, False, "Progress", "Forward offset applied to authoritative progress (ms)", "slider", min_val=-2000, max_val=2000),
            "progress.refresh_interval": Setting("Refresh Interval", float, 0.016, False, "Progress", "Display refresh cadence (s)", "slider", min_val=0.005, max_val=1.0),
            "progress.jitter_tolerance_ms": Setting("Jitter Tolerance", int, 0, False, "Progress", "Ignore late ticks moving progress back by at most this much (ms)", "slider", min_val=0, max_val=2000),

            # Lyrics
            "lyrics.show_translation": Setting("Show Translation", bool, True, False, "Lyrics", "Merge translated lyrics", "switch"),
            "lyrics.karaoke_enabled": Setting("Karaoke Lyrics", bool, True, False, "Lyrics", "Use word-level karaoke timing when available", "switch"),
            "lyrics.show_title_when_no_lyric": Setting("Title When No Lyric", bool, False, False, "Lyrics", "Show 'artist - title' when no lyric is available", "switch"),
            "lyrics.no_lyric_text": Setting("No Lyric Text", str, "Instrumental, enjoy the music", False, "Lyrics", "Placeholder text when no lyric is available"),
            "lyrics.time_offset_ms": Setting("Time Offset", int, 0, False, "Lyrics", "Display offset (ms, +later / -earlier)", "slider", min_val=-1500, max_val=1500),
            "lyrics.last_line_duration_ms": Setting("Last Line Duration", int, 5000, False, "Lyrics", "Duration given to the final line-level lyric (ms)", "number", min_val=0),
        }

        self.load_settings()

    def load_settings(self) -> None:
        """Load settings from JSON, fall back to defaults"""
        self._settings = {}

        # 1. Load defaults first
        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        # 2. Load from JSON if exists
        if self.settings_file.exists():
            try:
                with open(self.settings_file, 'r', encoding='utf-8') as f:
                    saved = json.load(f)
                for key, val in saved.items():
                    if key in self._definitions:
                        self._settings[key] = self._definitions[key].validate_and_convert(val)
                    else:
                        # Unknown keys are kept as-is
                        self._settings[key] = val
            except (OSError, ValueError, AttributeError) as e:
                logger.error(f"Failed to load {self.settings_file.name}: {e} - resetting to defaults")
                backup_path = self.settings_file.with_suffix('.json.corrupted')
                try:
                    shutil.copy2(self.settings_file, backup_path)
                    logger.info(f"Backed up corrupted settings to {backup_path}")
                except OSError as backup_error:
                    logger.warning(f"Could not back up corrupted settings: {backup_error}")
                self.save_to_config()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.
        Priority:
        1. Loaded value (from JSON or Schema Default)
        2. Schema Default (if key in definitions but not in settings dict yet)
        3. Provided 'default' argument (if key unknown)
        """
        if key in self._settings:
            return self._settings[key]

        if key in self._definitions:
            return self._definitions[key].default

        return default

    def set(self, key: str, value: Any) -> bool:
        """Set a known setting. Returns True if the change needs a restart."""
        if key not in self._definitions:
            return False

        setting = self._definitions[key]
        self._settings[key] = setting.validate_and_convert(value)
        return setting.requires_restart

    def save_to_config(self) -> None:
        """Save current memory settings to JSON file"""
        temp_path = self.settings_file.parent / f"settings_{uuid.uuid4().hex}.json.tmp"
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self._settings, f, indent=4, sort_keys=True, ensure_ascii=False)
            # Atomic replace (works on both Windows and Unix)
            os.replace(temp_path, self.settings_file)
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def get_all(self) -> Dict:
        """Return settings grouped by category"""
        result = {}
        for key, val in self._settings.items():
            defin = self._definitions.get(key)
            if not defin:
                continue

            cat = defin.category or "Misc"
            result.setdefault(cat, {})[key] = {
                "value": val,
                "name": defin.name,
                "description": defin.description,
                "type": defin.type.__name__,
                "requires_restart": defin.requires_restart,
                "widget_type": defin.widget_type,
                "options": defin.options,
                "min": defin.min_val,
                "max": defin.max_val,
            }
        return result

    def reset_to_defaults(self):
        if self.settings_file.exists():
            os.remove(self.settings_file)
        self.load_settings()


settings = SettingsManager()
