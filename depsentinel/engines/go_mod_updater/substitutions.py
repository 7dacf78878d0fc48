"""Map local-path replace targets to location-independent stub paths.

A go.mod may ``replace`` a module with a directory such as ``../local-bar``
that only exists in the original checkout. Before running the go tooling,
each such path is swapped for ``./<sha256 of the path>``; a stub module is
built there, and the swap is reversed on the final go.mod.

Stub ids are ``"./" + hashlib.sha256(path.encode("utf-8")).hexdigest()``:
deterministic for a path, with no parent-directory references.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from depsentinel.engines.go_mod_updater.models import ManifestSnapshot


def stub_id(path: str) -> str:
    return "./" + hashlib.sha256(path.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SubstitutionMap:
    """Ordered old-text -> new-text pairs applied to a go.mod body."""

    pairs: tuple[tuple[str, str], ...] = ()

    def __len__(self) -> int:
        return len(self.pairs)

    def as_dict(self) -> dict[str, str]:
        return dict(self.pairs)

    @property
    def targets(self) -> list[str]:
        return [new for _, new in self.pairs]

    def invert(self) -> SubstitutionMap:
        return SubstitutionMap(tuple((new, old) for old, new in self.pairs))

    def apply(self, text: str) -> str:
        # A replace directive names its path once; the first hit is the one.
        for old, new in self.pairs:
            text = text.replace(old, new, 1)
        return text


def compute_substitutions(snapshot: ManifestSnapshot) -> SubstitutionMap:
    """Build the map for every replace pointing at a filesystem path."""
    pairs: dict[str, str] = {}
    for replace in snapshot.replaces:
        if replace.is_local and replace.new_path not in pairs:
            pairs[replace.new_path] = stub_id(replace.new_path)
    return SubstitutionMap(tuple(pairs.items()))
