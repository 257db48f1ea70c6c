from .base import LyricParser
from .lrc import LrcParser
from .yrc import YrcParser
from .qrc import QrcParser
from .merge import (
    build_lyric_lines,
    get_parser,
    merge_karaoke,
    merge_translation,
    parse_lyrics,
)

__all__ = [
    'LyricParser',
    'LrcParser',
    'YrcParser',
    'QrcParser',
    'build_lyric_lines',
    'get_parser',
    'merge_karaoke',
    'merge_translation',
    'parse_lyrics',
]
