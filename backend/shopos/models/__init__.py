from .storage import LocalStorageEntry

__all__ = [
    'LocalStorageEntry',
]
