"""
Object key layout for recordings.

A recording lives under ``{prefix}{namespace}/{folder}/`` and consists of
exactly two objects, ``timing`` and ``typescript``. Prefix and namespace
are both optional.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Set

SEPARATOR = "/"
TIMING_FILE = "timing"
TYPESCRIPT_FILE = "typescript"
RECORDING_FILES = (TIMING_FILE, TYPESCRIPT_FILE)


def normalize_prefix(prefix: Optional[str]) -> str:
    """Return ``prefix`` ending in exactly one separator, or "" if empty."""
    if not prefix:
        return ""
    stripped = prefix.rstrip(SEPARATOR)
    if not stripped:
        return ""
    return stripped + SEPARATOR


def normalize_namespace(namespace: Optional[str]) -> str:
    if not namespace:
        return ""
    return normalize_prefix(namespace.lstrip(SEPARATOR))


@dataclass(frozen=True)
class RecordingKey:
    """Logical address of one recording file."""
    folder: str
    file: str
    namespace: Optional[str] = None

    def physical(self, prefix: Optional[str] = "") -> str:
        return build_key(prefix, self.namespace, self.folder, self.file)

    @classmethod
    def timing(cls, folder: str, namespace: Optional[str] = None) -> "RecordingKey":
        return cls(folder=folder, file=TIMING_FILE, namespace=namespace)

    @classmethod
    def typescript(cls, folder: str, namespace: Optional[str] = None) -> "RecordingKey":
        return cls(folder=folder, file=TYPESCRIPT_FILE, namespace=namespace)


def namespace_prefix(prefix: Optional[str], namespace: Optional[str] = None) -> str:
    """Listing prefix covering every recording in a namespace."""
    return normalize_prefix(prefix) + normalize_namespace(namespace)


def folder_prefix(prefix: Optional[str], namespace: Optional[str], folder: str) -> str:
    """Listing prefix covering the files of one recording."""
    return namespace_prefix(prefix, namespace) + folder + SEPARATOR


def build_key(
    prefix: Optional[str],
    namespace: Optional[str],
    folder: str,
    file: str,
) -> str:
    return folder_prefix(prefix, namespace, folder) + file


def _strip(key: str, prefix: str) -> Optional[str]:
    normalized = normalize_prefix(prefix)
    if key.startswith(normalized):
        return key[len(normalized):]
    if key.startswith(prefix):
        return key[len(prefix):]
    return None


def extract_folder(
    key: str,
    prefix: Optional[str] = "",
    namespace: Optional[str] = None,
) -> Optional[str]:
    """
    Get the recording folder a key belongs to.

    Returns None for keys with no folder component, including a key equal
    to the prefix itself, and for keys outside ``namespace``.
    """
    remainder = key

    if prefix:
        stripped = _strip(remainder, prefix)
        if stripped is not None:
            remainder = stripped

    scope = normalize_namespace(namespace)
    if scope:
        remainder = remainder.lstrip(SEPARATOR)
        if not remainder.startswith(scope):
            return None
        remainder = remainder[len(scope):]

    parts = remainder.lstrip(SEPARATOR).split(SEPARATOR)
    if len(parts) < 2 or not parts[0]:
        return None
    return parts[0]


def is_valid_recording(keys: Iterable[str]) -> bool:
    """True if the listing holds both a timing and a typescript file."""
    has_timing = False
    has_typescript = False

    for key in keys:
        if key.endswith(SEPARATOR + TIMING_FILE):
            has_timing = True
        elif key.endswith(SEPARATOR + TYPESCRIPT_FILE):
            has_typescript = True
        if has_timing and has_typescript:
            return True

    return False


def list_folders(
    keys: Iterable[str],
    prefix: Optional[str] = "",
    namespace: Optional[str] = None,
) -> Set[str]:
    folders = set()
    for key in keys:
        folder = extract_folder(key, prefix, namespace)
        if folder:
            folders.add(folder)
    return folders


def collect_folders(
    pages: Iterable[Iterable[str]],
    prefix: Optional[str] = "",
    namespace: Optional[str] = None,
) -> Set[str]:
    """Merge folders from every page of a paginated listing."""
    folders: Set[str] = set()
    for keys in pages:
        folders |= list_folders(keys, prefix, namespace)
    return folders


def is_safe_folder(folder: str) -> bool:
    """Reject folder identifiers that would escape their namespace."""
    return bool(folder) and SEPARATOR not in folder and folder not in (".", "..")


def parse_folder_timestamp(folder: str) -> Optional[int]:
    """Unix timestamp from a ``<workload>_<seconds>`` folder name, if any."""
    _, sep, suffix = folder.rpartition("_")
    if not sep or not suffix.isdigit():
        return None
    return int(suffix)
