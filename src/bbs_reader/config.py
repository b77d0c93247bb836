"""Configuration constants for bbs-reader."""

import os
from pathlib import Path

# Placeholder the server writes in place of a moderator-deleted post.
ABONE_MARKER: str = "あぼーん"

# Storage key for the persisted NG words configuration.
NG_STORAGE_KEY: str = "bbs-reader:ng-words:config"

NG_CONFIG_VERSION: int = 1

# Seconds to wait after the last rule edit before writing the config out.
DEBOUNCE_DELAY: float = 0.3

# Encoding of dat/subject.txt files as served by the board.
DAT_ENCODING: str = "cp932"

# Directory holding persisted preferences. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/bbs-reader").expanduser(),
    Path("~/.config/bbs-reader").expanduser(),
]


def resolve_data_directory() -> Path:
    """Return the preferences directory.

    ``BBS_READER_DATA_DIR`` wins when set; otherwise the first existing
    candidate, falling back to the first candidate.
    """
    env_dir = os.environ.get("BBS_READER_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]
