"""
TruxTrack - Multi-provider shipment status tracker.

Queries several carrier tracking portals for the same tracking number,
reports the first usable status history and pushes it to connected clients.
"""

__version__ = "0.1.0"
__app_name__ = "truxtrack"
