# Storage Module - Partitioned persistent key-value store

from .kv_store import Namespace, VaultStore

__all__ = ["Namespace", "VaultStore"]
