# Recording storage
from .keys import (
    RecordingKey,
    build_key,
    extract_folder,
    normalize_prefix,
    is_valid_recording,
    list_folders,
    collect_folders,
    TIMING_FILE,
    TYPESCRIPT_FILE,
)
from .object_store import (
    ObjectStore,
    FilesystemObjectStore,
    MemoryObjectStore,
    ListPage,
    StorageError,
    ObjectNotFoundError,
    create_object_store,
)
from .recording_library import (
    RecordingLibrary,
    RecordingInfo,
    RecordingNotFoundError,
    StorageConfig,
    apply_storage_overrides,
    load_storage_overrides,
    save_storage_overrides,
)

__all__ = [
    "RecordingKey",
    "build_key",
    "extract_folder",
    "normalize_prefix",
    "is_valid_recording",
    "list_folders",
    "collect_folders",
    "TIMING_FILE",
    "TYPESCRIPT_FILE",
    "ObjectStore",
    "FilesystemObjectStore",
    "MemoryObjectStore",
    "ListPage",
    "StorageError",
    "ObjectNotFoundError",
    "create_object_store",
    "RecordingLibrary",
    "RecordingInfo",
    "RecordingNotFoundError",
    "StorageConfig",
    "apply_storage_overrides",
    "load_storage_overrides",
    "save_storage_overrides",
]
