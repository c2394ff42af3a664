"""
Tier configuration and selection.

tiers.yaml example:

    tiers:
      - name: Holder
        min_count: 1
        role_id: "112233445566778899"
        description: Holds at least one token
      - name: Whale
        min_count: 10
        role_id: "998877665544332211"
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

import yaml

from rolegate.core.errors import TierConfigError

logger = logging.getLogger(__name__)

TierSource = Callable[[], Sequence["Tier"]]


@dataclass(frozen=True)
class Tier:
    name: str
    min_count: int
    role_id: str
    description: Optional[str] = None


def _parse_tier(entry: Any) -> Tier:
    if not isinstance(entry, dict):
        raise TierConfigError(f"tier entry must be a mapping, got {type(entry).__name__}")
    try:
        name = str(entry["name"])
        min_count = int(entry["min_count"])
        role_id = str(entry["role_id"])
    except KeyError as exc:
        raise TierConfigError(f"tier entry is missing {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise TierConfigError(f"tier entry {entry!r} is invalid: {exc}") from exc
    if min_count < 0:
        raise TierConfigError(f"tier {name} has a negative min_count")
    description = entry.get("description")
    return Tier(name=name, min_count=min_count, role_id=role_id, description=description)


def parse_tiers(entries: Iterable[Any]) -> List[Tier]:
    tiers = [_parse_tier(entry) for entry in entries]
    names = [tier.name for tier in tiers]
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        raise TierConfigError(f"duplicate tier names: {sorted(duplicates)}")
    return tiers


def load_tiers(path: Union[str, Path]) -> List[Tier]:
    path = Path(path)
    if not path.exists():
        raise TierConfigError(f"tier file not found: {path}")
    try:
        with open(path, "r") as file:
            data = yaml.safe_load(file) or {}
    except yaml.YAMLError as exc:
        raise TierConfigError(f"failed to parse tier file: {exc}") from exc

    entries = data.get("tiers") if isinstance(data, dict) else data
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise TierConfigError("tiers must be a list")
    return parse_tiers(entries)


class FileTierSource:
    """Tier list backed by a yaml file, re-read whenever the file changes."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = Lock()
        self._mtime: Optional[float] = None
        self._tiers: List[Tier] = []

    def __call__(self) -> List[Tier]:
        try:
            mtime = os.stat(self.path).st_mtime
        except OSError as exc:
            raise TierConfigError(f"tier file not readable: {self.path}: {exc}") from exc
        with self._lock:
            if mtime != self._mtime:
                self._tiers = load_tiers(self.path)
                self._mtime = mtime
                logger.info("loaded %d tiers from %s", len(self._tiers), self.path)
            return list(self._tiers)


def select_tier(tiers: Iterable[Tier], count: int) -> Optional[Tier]:
    """Highest tier whose min_count is <= count, None when nothing qualifies.

    Tiers sharing a min_count resolve to the one listed first.
    """
    if count < 0:
        raise ValueError("count must be non-negative")
    best: Optional[Tier] = None
    for tier in tiers:
        if tier.min_count <= count and (best is None or tier.min_count > best.min_count):
            best = tier
    return best


class TierCalculator:
    def __init__(self, source: Union[TierSource, Sequence[Tier]]):
        if callable(source):
            self._source = source
        else:
            static = list(source)
            self._source = lambda: static

    def tiers(self) -> List[Tier]:
        """Current tier list, read from the source on every call."""
        return list(self._source())

    def role_ids(self) -> List[str]:
        return [tier.role_id for tier in self.tiers()]

    def tier_for(self, count: int) -> Optional[Tier]:
        return select_tier(self._source(), count)
