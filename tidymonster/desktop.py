"""
Desktop glue.

Everything platform-specific the engine needs, kept out of the engine:
- where the desktops are
- how a shortcut is deleted
- what counts as an application shortcut
- which item set a given configuration watches
"""

import configparser
import logging
import os
import struct
from pathlib import Path
from typing import Callable, FrozenSet, Optional

from .itemsets import DirectoryWatch, FilteredSet, ObservableItemSet, UnionSet
from .settings import KeyValueStore, ShortcutFilter, TidySettings, load_settings

logger = logging.getLogger(__name__)


# Executable extensions assumed on Windows when PATHEXT is not set
DEFAULT_WINDOWS_PATHEXT = ".COM;.EXE;.BAT;.CMD"


# -----------------------------------------------------------------------------
# Locations
# -----------------------------------------------------------------------------

def user_desktop() -> Path:
    """The current user's desktop directory."""
    if os.name == "nt":
        return Path(os.environ.get("USERPROFILE", str(Path.home()))) / "Desktop"

    xdg = os.environ.get("XDG_DESKTOP_DIR")
    if xdg:
        return Path(os.path.expandvars(xdg))
    return Path.home() / "Desktop"


def common_desktop() -> Optional[Path]:
    """The desktop shared by all users, or None where the platform has none."""
    if os.name == "nt":
        public = os.environ.get("PUBLIC")
        return Path(public) / "Desktop" if public else None
    return None


# -----------------------------------------------------------------------------
# Delete action
# -----------------------------------------------------------------------------

def delete_file(path: Path) -> bool:
    """
    Delete one file.

    A file that is already gone counts as deleted. Any other OSError
    propagates so the retry scheduler backs off and tries again.
    """
    try:
        Path(path).unlink()
    except FileNotFoundError:
        logger.debug(f"Already gone: {path}")
        return True
    logger.info(f"Deleted {path}")
    return True


# -----------------------------------------------------------------------------
# Application shortcuts
# -----------------------------------------------------------------------------

def application_extensions(environ=None) -> FrozenSet[str]:
    """Lower-cased executable extensions from PATHEXT."""
    environ = os.environ if environ is None else environ
    pathext = environ.get("PATHEXT")
    if pathext is None and os.name == "nt":
        pathext = DEFAULT_WINDOWS_PATHEXT
    if not pathext:
        return frozenset()
    return frozenset(ext.strip().lower() for ext in pathext.split(";") if ext.strip())


def targets_application(path: Path, extensions: FrozenSet[str] = frozenset()) -> bool:
    """
    True if the shortcut at `path` launches an application.

    - .desktop entries: Type=Application
    - .lnk shell links: target has an executable extension
    - symbolic links: target has an executable extension, or (off Windows)
      is an executable file

    Raises for unreadable or malformed shortcuts (OSError, ValueError,
    configparser.Error); the filter treats those as "not an application".
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".desktop":
        return desktop_entry_type(path) == "Application"

    if suffix == ".lnk":
        target = read_shortcut_target(path)
    elif path.is_symlink():
        target = os.path.join(path.parent, os.readlink(path))
    else:
        return False

    if not target:
        return False
    return _is_application(target, extensions)


def _is_application(target: str, extensions: FrozenSet[str]) -> bool:
    # Windows-style targets keep their backslashes off Windows
    name = target.replace("\\", "/").rsplit("/", 1)[-1]
    ext = os.path.splitext(name)[1].lower()
    if ext and ext in extensions:
        return True
    if os.name == "nt":
        return False
    target_path = Path(target)
    return target_path.is_file() and os.access(target_path, os.X_OK)


def desktop_entry_type(path: Path) -> Optional[str]:
    """Value of Type= in a freedesktop .desktop entry."""
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        parser.read_file(f)
    return parser.get("Desktop Entry", "Type", fallback=None)


# MS-SHLLINK layout
_LNK_HEADER_SIZE = 0x4C
_LNK_FLAGS_OFFSET = 0x14
_HAS_LINK_TARGET_ID_LIST = 0x01
_HAS_LINK_INFO = 0x02
_VOLUME_ID_AND_LOCAL_BASE_PATH = 0x01
_LINK_INFO_UNICODE_HEADER_SIZE = 0x24


def read_shortcut_target(path: Path) -> Optional[str]:
    """
    Local target path of a Windows shell link (.lnk).

    Returns None for links without a local path (network shares, shell
    folders).

    Raises:
        ValueError: If the file is not a shell link
    """
    data = Path(path).read_bytes()
    if len(data) < _LNK_HEADER_SIZE or struct.unpack_from("<I", data, 0)[0] != _LNK_HEADER_SIZE:
        raise ValueError(f"Not a shell link: {path}")

    try:
        (flags,) = struct.unpack_from("<I", data, _LNK_FLAGS_OFFSET)
        offset = _LNK_HEADER_SIZE

        if flags & _HAS_LINK_TARGET_ID_LIST:
            (id_list_size,) = struct.unpack_from("<H", data, offset)
            offset += 2 + id_list_size

        if not flags & _HAS_LINK_INFO:
            return None

        (
            _info_size,
            header_size,
            info_flags,
            _volume_id_offset,
            base_offset,
            _network_offset,
            suffix_offset,
        ) = struct.unpack_from("<7I", data, offset)

        if not info_flags & _VOLUME_ID_AND_LOCAL_BASE_PATH:
            return None

        if header_size >= _LINK_INFO_UNICODE_HEADER_SIZE:
            base_u, suffix_u = struct.unpack_from("<2I", data, offset + 0x1C)
            return _utf16_string(data, offset + base_u) + _utf16_string(data, offset + suffix_u)

        return _ansi_string(data, offset + base_offset) + _ansi_string(data, offset + suffix_offset)

    except struct.error as e:
        raise ValueError(f"Truncated shell link {path}: {e}") from e


def _ansi_string(data: bytes, start: int) -> str:
    end = data.index(b"\0", start)
    return data[start:end].decode("cp1252", errors="replace")


def _utf16_string(data: bytes, start: int) -> str:
    end = start
    while data[end:end + 2] != b"\0\0":
        if end + 2 > len(data):
            raise ValueError("Unterminated UTF-16 string in shell link")
        end += 2
    return data[start:end].decode("utf-16-le", errors="replace")


# -----------------------------------------------------------------------------
# Item set factory
# -----------------------------------------------------------------------------

def build_item_set(settings: TidySettings) -> ObservableItemSet:
    """
    Item set for a configuration.

    The user's desktop, plus the all-users desktop when tidy_all_users is
    set, narrowed to application shortcuts when shortcut_filter is APPS.
    """
    pattern = settings.search_pattern
    user = Path(settings.user_desktop) if settings.user_desktop else user_desktop()
    item_set: ObservableItemSet = DirectoryWatch(user, pattern)

    if settings.tidy_all_users:
        common = Path(settings.common_desktop) if settings.common_desktop else common_desktop()
        if common is None:
            logger.warning("No all-users desktop on this platform, tidying the user desktop only")
        else:
            item_set = UnionSet([DirectoryWatch(common, pattern), item_set])

    if settings.shortcut_filter is ShortcutFilter.APPS:
        extensions = application_extensions()
        item_set = FilteredSet(item_set, lambda item: targets_application(item, extensions))

    return item_set


def item_set_factory(store: KeyValueStore) -> Callable[[], ObservableItemSet]:
    """Factory that re-reads settings from `store` on every call."""

    def create() -> ObservableItemSet:
        return build_item_set(load_settings(store))

    return create
