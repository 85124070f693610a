"""Platform-owned persistence layer (backends and storage primitives).

``SQLiteBackend`` lives in ``persistence.sqlite_backend`` and is only
imported once the capability probe has chosen it.
"""

from .backend import StorageBackend, build_backend, resolve_backend_name, sqlite_available
from .flat_backend import FlatBackend
from .kv_store import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
