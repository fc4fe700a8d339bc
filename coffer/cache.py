from datetime import datetime, timezone

from coffer.models import Snapshot


class PriceCache:
    """
    Holds the one current Snapshot.

    Only the aggregator publishes; readers get whatever reference is current.
    Snapshots are immutable, so rebinding the attribute is the whole swap.
    """

    def __init__(self, initial: Snapshot):
        self._snapshot = initial

    def get_current_snapshot(self) -> Snapshot:
        return self._snapshot

    def publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def get_age_seconds(self) -> int:
        """Seconds since the snapshot was last refreshed."""
        age = (datetime.now(timezone.utc) - self._snapshot.fetched_at).total_seconds()
        return max(int(age), 0)
