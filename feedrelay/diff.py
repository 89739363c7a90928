"""Watermark diffing: decide which feed items are new for a subscription."""

from .models import DiffResult, FeedItem


def _date_sort_key(item: FeedItem) -> tuple[bool, int]:
    # Undated items sort lowest
    return (item.date is not None, item.date or 0)


def order_items(items: list[FeedItem]) -> list[FeedItem]:
    """Order items oldest first.

    Sorted (stably) by date when any item carries one; otherwise the source
    order is assumed to already be oldest first and kept as is.
    """
    if any(item.date is not None for item in items):
        return sorted(items, key=_date_sort_key)
    return list(items)


def diff_items(
    items: list[FeedItem],
    last_item_id: str | None = None,
    last_item_date: int | None = None,
) -> DiffResult:
    """Compute the items published since the stored watermark.

    Strategies, in order: position after the watermark id, items dated after
    the watermark date (only when the id is gone), and finally the single
    latest item when it differs from the watermark id. A subscription with no
    watermark yet gets no new items; the caller stores latest_item instead.

    Args:
        items: Items in source order
        last_item_id: Id of the last notified item
        last_item_date: Date (epoch ms) of the last notified item

    Returns:
        DiffResult with new items oldest first and the latest item overall
    """
    if not items:
        return DiffResult(new_items=[])

    ordered = order_items(items)
    latest_item = ordered[-1]

    if not last_item_id and last_item_date is None:
        return DiffResult(new_items=[], latest_item=latest_item)

    new_items: list[FeedItem] = []
    found = False

    if last_item_id:
        for index, item in enumerate(ordered):
            if item.id == last_item_id:
                new_items = ordered[index + 1 :]
                found = True
                break

    if not found and last_item_date is not None:
        new_items = [
            item
            for item in ordered
            if item.date is not None and item.date > last_item_date
        ]

    if not new_items and latest_item.id != last_item_id:
        new_items = [latest_item]

    return DiffResult(new_items=new_items, latest_item=latest_item)
