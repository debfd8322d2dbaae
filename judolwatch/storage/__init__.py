"""Storage modules for JudolWatch."""

from .preferences import JsonPreferenceStore, MemoryPreferenceStore, PreferenceStore

__all__ = ["JsonPreferenceStore", "MemoryPreferenceStore", "PreferenceStore"]
