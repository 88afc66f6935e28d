"""
Item records written by the ingestion collaborator.

Items are partitioned by publication day at items/<YYYY-MM-DD>/<id>.json
(undated items under items/undated/), so a windowed load only lists the day
prefixes inside the window instead of the whole item history.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import structlog

from topiccluster.models import Item, utcnow
from topiccluster.storage.backend import StorageBackend


logger = structlog.get_logger(__name__)

ITEM_PREFIX = 'items/'
UNDATED_PARTITION = 'undated'
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def day_partition(published_at: Optional[datetime]) -> str:
    if published_at is None:
        return UNDATED_PARTITION
    return published_at.astimezone(timezone.utc).strftime('%Y-%m-%d')


def item_path(item_id: str, published_at: Optional[datetime] = None) -> str:
    return f"{ITEM_PREFIX}{day_partition(published_at)}/{item_id}.json"


class ItemRepository:
    """Reads and writes day-partitioned item records."""

    def __init__(self, storage: StorageBackend, max_items_per_day: Optional[int] = None):
        self.storage = storage
        self.max_items_per_day = max_items_per_day

    def save_item(self, item: Item) -> None:
        self.storage.write(item_path(item.id, item.published_at), item.to_dict())

    def get_item(self, item_id: str, published_at: Optional[datetime] = None) -> Optional[Item]:
        data = self.storage.read(item_path(item_id, published_at))
        return Item.from_dict(data) if data else None

    def _partitions(self, time_window_hours: Optional[int]) -> List[str]:
        if not time_window_hours:
            return [ITEM_PREFIX]
        now = utcnow()
        day = (now - timedelta(hours=time_window_hours)).date()
        prefixes = [f"{ITEM_PREFIX}{UNDATED_PARTITION}/"]
        while day <= now.date():
            prefixes.append(f"{ITEM_PREFIX}{day.isoformat()}/")
            day += timedelta(days=1)
        return prefixes

    def load_items(self, time_window_hours: Optional[int] = None) -> List[Item]:
        """
        Stored items, oldest publication first (undated items lead, then by id).

        With a window only the day partitions it touches are listed, each capped
        at `max_items_per_day` records; items before the cutoff are dropped.
        """
        cutoff = utcnow() - timedelta(hours=time_window_hours) if time_window_hours else None
        items = []

        for prefix in self._partitions(time_window_hours):
            paths = self.storage.list(prefix)
            if cutoff and self.max_items_per_day and len(paths) > self.max_items_per_day:
                logger.warning("item_partition_capped",
                              partition=prefix,
                              stored=len(paths),
                              loaded=self.max_items_per_day)
                paths = paths[:self.max_items_per_day]

            for path in paths:
                data = self.storage.read(path)
                if not data:
                    continue
                item = Item.from_dict(data)
                if cutoff and item.published_at and item.published_at < cutoff:
                    continue
                items.append(item)

        items.sort(key=lambda item: (item.published_at or EPOCH, item.id))
        logger.debug("items_loaded", count=len(items), time_window_hours=time_window_hours)
        return items

    def load_unclustered(self, assigned_ids: Iterable[str],
                         time_window_hours: Optional[int] = None,
                         items: Optional[List[Item]] = None) -> List[Item]:
        """Items not in any cluster, optionally limited to a publication window."""
        assigned = set(assigned_ids)
        cutoff = utcnow() - timedelta(hours=time_window_hours) if time_window_hours else None
        if items is None:
            items = self.load_items(time_window_hours)

        unclustered = []
        for item in items:
            if item.id in assigned:
                continue
            if cutoff and item.published_at and item.published_at < cutoff:
                continue
            unclustered.append(item)

        logger.info("fetched_unclustered_items",
                   count=len(unclustered),
                   time_window_hours=time_window_hours)
        return unclustered

    @staticmethod
    def as_lookup(items: Iterable[Item]) -> Dict[str, Item]:
        return {item.id: item for item in items}
