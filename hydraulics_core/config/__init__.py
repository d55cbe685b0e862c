# =============================================================================
# hydraulics_core/config/__init__.py
# Application Settings
# =============================================================================

from .settings import (
    CompletionSettings,
    Settings,
    SupabaseSettings,
    SyncSettings,
    load_settings,
)

__all__ = [
    "CompletionSettings",
    "Settings",
    "SupabaseSettings",
    "SyncSettings",
    "load_settings",
]
