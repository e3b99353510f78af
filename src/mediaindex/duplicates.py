"""Duplicate classification over a complete set of index records.

Records are grouped by content digest. Every group with two or more members
keeps exactly one canonical survivor, the lexicographically smallest path, and
all other members are marked duplicate. The result depends only on the set of
``(path, digest)`` pairs, never on iteration order, so classifying the same
snapshot twice yields identical marks.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from mediaindex import HASH_ERROR
from mediaindex.store.models import IndexRecord


@dataclass(frozen=True, slots=True)
class DigestGroup:
    """Records sharing one content digest.

    Attributes:
        digest: Shared content digest.
        survivor: Path kept as the canonical copy.
        duplicates: Remaining paths, sorted.
    """

    digest: str
    survivor: str
    duplicates: tuple[str, ...]


@dataclass(slots=True)
class DuplicateReport:
    """Outcome of a classification pass."""

    groups: list[DigestGroup] = field(default_factory=list)

    @property
    def duplicate_paths(self) -> frozenset[str]:
        """Return every path that must be flagged as duplicate."""
        return frozenset(path for group in self.groups for path in group.duplicates)


class DuplicateClassifier:
    """Partition records by digest and pick one survivor per group."""

    def __init__(self, *, exclude_hash_errors: bool = False) -> None:
        """Initialize the classifier.

        Args:
            exclude_hash_errors: When True, records whose digest is the
                ``HASH_ERROR`` sentinel never form a group. The default keeps
                them, so two unreadable files are reported as duplicates of
                each other.
        """
        self.exclude_hash_errors = exclude_hash_errors

    def classify(self, records: Iterable[IndexRecord]) -> DuplicateReport:
        """Return the duplicate groups present in ``records``."""
        by_digest: dict[str, set[str]] = defaultdict(set)
        for record in records:
            if self.exclude_hash_errors and record.content_digest == HASH_ERROR:
                continue
            by_digest[record.content_digest].add(record.path)

        report = DuplicateReport()
        for digest in sorted(by_digest):
            paths = sorted(by_digest[digest])
            if len(paths) < 2:
                continue
            report.groups.append(
                DigestGroup(digest=digest, survivor=paths[0], duplicates=tuple(paths[1:]))
            )
        return report

    def apply(self, records: Iterable[IndexRecord]) -> list[IndexRecord]:
        """Return copies of ``records`` with ``is_duplicate`` recomputed from scratch."""
        materialized = list(records)
        flagged = self.classify(materialized).duplicate_paths
        return [
            record.model_copy(update={"is_duplicate": record.path in flagged})
            for record in materialized
        ]


__all__ = ["DigestGroup", "DuplicateReport", "DuplicateClassifier"]
