from __future__ import annotations

from typing import Optional, Sequence, Tuple

from facetnav.config.settings import Settings
from facetnav.index.search_adapter import SearchAdapter
from facetnav.models.context import ParentCategory, RequestContext


def visible_group_ids(ctx: RequestContext, settings: Settings) -> Optional[Tuple[int, ...]]:
    """Customer groups whose categories the viewer may see, or None when unrestricted."""
    if not settings.customer_groups_enabled:
        return None
    if ctx.authenticated and ctx.customer_group_ids:
        return tuple(ctx.customer_group_ids)
    return (settings.unidentified_group_id,)


def restrict_to_subtree(
    adapter: SearchAdapter,
    parent: ParentCategory,
    max_depth: int,
    group_ids: Sequence[int] | None = None,
) -> None:
    """Limit category aggregation to strict descendants of `parent`.

    A non-zero `max_depth` also caps how many levels below the parent are
    counted.
    """
    if group_ids is not None:
        adapter.add_filter("customer_group", list(group_ids))
    if max_depth:
        adapter.add_filter("level_depth", [parent.level_depth + max_depth], "<=")
    adapter.add_filter("nleft", [parent.nleft], ">")
    adapter.add_filter("nright", [parent.nright], "<")

