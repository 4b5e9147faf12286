"""State/store layer.

The trip store is the single source of truth for the UI: every change to
a trip graph goes through it, is persisted as a whole-trip record and
then published as a new immutable snapshot.
"""

from pytrip.state.store import Listener, TripStore, TripStoreState

__all__ = ["Listener", "TripStore", "TripStoreState"]
