from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True, order=True)
class PackageId:
    """A published crate revision, ordered by name then version."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


class ItemStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NO_ARTIFACT = "no_artifact"


@dataclass
class ItemResult:
    """Terminal outcome of one stage for one package."""

    package: PackageId
    status: ItemStatus
    message: str = ""
    stderr: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.package.name,
            "version": self.package.version,
            "status": self.status.value,
        }
        if self.message:
            data["message"] = self.message
        if self.stderr:
            data["stderr"] = self.stderr
        return data


@dataclass
class StageReport:
    """Summary emitted once a stage has processed the whole catalog."""

    stage: str
    results: List[ItemResult] = field(default_factory=list)

    @property
    def status(self) -> str:
        if any(result.status is ItemStatus.FAILED for result in self.results):
            return "failed"
        return "completed"

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ItemStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def by_status(self, status: ItemStatus) -> List[ItemResult]:
        return [result for result in self.results if result.status is status]

    def get(self, package: PackageId) -> Optional[ItemResult]:
        for result in self.results:
            if result.package == package:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        failures = sorted(self.by_status(ItemStatus.FAILED), key=lambda item: item.package)
        return {
            "stage": self.stage,
            "status": self.status,
            "details": {
                "total": len(self.results),
                "counts": self.counts(),
                "failures": [result.to_dict() for result in failures],
            },
        }
