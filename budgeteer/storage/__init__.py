"""
Storage Adapters Package.

One adapter per storage mode, all implementing ``StorageAdapter``:

- ``SupabaseAdapter``: cloud
- ``SQLiteAdapter``: local
- ``MemoryAdapter``: demo
"""

from budgeteer.storage.base import StorageAdapter
from budgeteer.storage.memory_adapter import MemoryAdapter
from budgeteer.storage.sqlite_adapter import SQLiteAdapter
from budgeteer.storage.supabase_adapter import SupabaseAdapter

__all__ = [
    "MemoryAdapter",
    "SQLiteAdapter",
    "StorageAdapter",
    "SupabaseAdapter",
]
