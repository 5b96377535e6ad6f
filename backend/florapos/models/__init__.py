from .local_entries import LocalEntry

__all__ = [
    'LocalEntry',
]
