"""
Marketplace Core Metadata
-------------------------
Project identity shared by the HTTP surface and health reports.
"""

__project__ = "Marketplace Sync Core"
__version__ = "1.0.0"

CORE_METADATA = {
    "project": __project__,
    "version": __version__,
    "description": (
        "Client-side state store, realtime synchronization and notification "
        "core for a multi-role B2B marketplace."
    ),
}


def get_metadata() -> dict:
    """Return current system metadata as a dict."""
    return dict(CORE_METADATA)
