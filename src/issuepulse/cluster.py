"""Group unlinked raw items into candidate clusters by shared title keywords."""

from __future__ import annotations

import logging

from issuepulse.keywords import tokenize
from issuepulse.models import Cluster, RawItem

logger = logging.getLogger(__name__)

# Items need only share this many tokens with a cluster to join it. Low on
# purpose: headlines about one event vary a lot; the gate's volume and source
# diversity checks filter out accidental merges.
_MIN_SHARED_TOKENS = 1


def chronological(items: list[RawItem]) -> list[RawItem]:
    """Earliest ``created_at`` first, ties broken by the lowest id."""
    return sorted(items, key=lambda i: (i.created_at, i.id))


def cluster_items(items: list[RawItem]) -> list[Cluster]:
    """Cluster *items* so that any two sharing a token end up together.

    Items are visited chronologically. An item that overlaps several existing
    clusters fuses them, so the result does not depend on input order and each
    cluster's first member is its earliest item.
    """
    clusters: list[Cluster] = []

    for item in chronological(items):
        tokens = tokenize(item.title)
        hits = [c for c in clusters if len(c.tokens & tokens) >= _MIN_SHARED_TOKENS]

        if not hits:
            clusters.append(Cluster(tokens=set(tokens), items=[item]))
            continue

        target = hits[0]
        target.items.append(item)
        target.tokens |= tokens
        absorbed = hits[1:]
        if absorbed:
            for other in absorbed:
                target.items.extend(other.items)
                target.tokens |= other.tokens
            target.items = chronological(target.items)
            clusters = [c for c in clusters if all(c is not o for o in absorbed)]

    logger.info("Clustered %d items into %d candidates", len(items), len(clusters))
    return clusters
