# core/duplicate_grouper.py

import logging
from typing import Dict, List, Set

from core.errors import InvalidArgumentError
from core.models import DuplicateGroup
from core.record_store import VectorRecordStore
from core.vector_index import SimilarityIndex, distance_to_similarity

logger = logging.getLogger(__name__)


class DuplicateGrouper:
    """
    Greedy, representative-first duplicate clustering.

    Records are visited in insertion order. Each record not yet claimed by a
    group queries the index with its own vector; every other unclaimed path
    scoring at or above the threshold joins a new group led by that record.
    The representative and its members are then skipped as future
    representatives.

    Grouping is not symmetric and is not a transitive closure: with A near B
    and B near C but A far from C, A's group takes B only, and C may start
    its own group or stay ungrouped depending on order. Singletons are not
    reported.
    """

    def __init__(self, threshold: float):
        if not 0.0 <= threshold <= 1.0:
            raise InvalidArgumentError(f"threshold must be in [0, 1], got {threshold}")
        self.threshold = threshold

    def group(self, store: VectorRecordStore,
              index: SimilarityIndex) -> List[DuplicateGroup]:
        """
        Partition the store into duplicate groups

        Args:
            store: Records to group; must match ``index`` membership
            index: Index built from ``store``

        Returns:
            Groups in the order their representatives were visited
        """
        total = len(store)
        if total < 2:
            return []

        paths_by_id = {record.id: record.path for record in store}
        assigned: Set[str] = set()
        groups: List[DuplicateGroup] = []

        for record in store:
            if record.path in assigned:
                continue

            scores: Dict[str, float] = {}
            for record_id, distance in index.query(record.vector, total):
                similarity = distance_to_similarity(distance)
                if similarity < self.threshold:
                    break
                path = paths_by_id[record_id]
                if path == record.path or path in assigned:
                    continue
                scores[path] = similarity

            if not scores:
                continue

            group = DuplicateGroup(
                representative=record.path,
                members=tuple(scores),
                scores=scores,
            )
            groups.append(group)
            assigned.add(record.path)
            assigned.update(scores)

        logger.info(
            f"Found {len(groups)} duplicate groups among {total} images "
            f"(threshold {self.threshold})"
        )
        return groups
