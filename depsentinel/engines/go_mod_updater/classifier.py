"""Turn go toolchain stderr into one of a small set of dependency-file errors.

Rules are tried in order and the first matching rule wins:

1. resolvability failures  -> DependencyFileNotResolvable
2. module path mismatches  -> GoModulePathMismatch
3. anything else           -> DependencyFileNotParseable (last 10 lines)
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from depsentinel.core.errors import (
    DependencyFileError,
    DependencyFileNotParseable,
    DependencyFileNotResolvable,
    GoModulePathMismatch,
)

Extractor = Callable[[re.Match[str], str, str], DependencyFileError]

_FALLBACK_TAIL_LINES = 10


@dataclass(frozen=True)
class ClassifierRule:
    """A stderr pattern and how to build the error when it matches."""

    name: str
    pattern: re.Pattern[str]
    build: Extractor

    def match(self, stderr: str) -> re.Match[str] | None:
        return self.pattern.search(stderr)


def _not_resolvable(pattern: re.Pattern[str]) -> Extractor:
    def build(match: re.Match[str], stderr: str, go_mod_path: str) -> DependencyFileError:
        # Keep everything from the first line naming the failure; the lines
        # before it are download/progress chatter.
        lines = stderr.splitlines(keepends=True)
        for i, line in enumerate(lines):
            if pattern.search(line):
                return DependencyFileNotResolvable("".join(lines[i:]))
        return DependencyFileNotResolvable(stderr[match.start() :])

    return build


def _path_mismatch(match: re.Match[str], stderr: str, go_mod_path: str) -> DependencyFileError:
    return GoModulePathMismatch(go_mod_path, match.group(1), match.group(2))


_RESOLVABILITY_PATTERNS = [
    ("git_fetch_failed", re.compile(r"go: .*: git fetch .*: exit status 128")),
    ("checksum_mismatch", re.compile(r"verifying .*: checksum mismatch")),
    ("no_module_for_package", re.compile(r"build .*: cannot find module providing package")),
]

# Group 1: the path the module was required as; group 2: the path it declares.
_PATH_MISMATCH_PATTERNS = [
    (
        "non_matching_module_path",
        re.compile(r'go: ([^@\s]+)(?:@[^\s]+)?: .* has non-.* module path "(.*)" at'),
    ),
    (
        "unexpected_module_path",
        re.compile(r'go: ([^@\s]+)(?:@[^\s]+)?: .* unexpected module path "(.*)"'),
    ),
    (
        "declares_its_path",
        re.compile(r"go: ([^@\s]+)(?:@[^\s]+)?: .* declares its path as: ([\S]*)", re.DOTALL),
    ),
]

RULES: list[ClassifierRule] = [
    ClassifierRule(name, pattern, _not_resolvable(pattern))
    for name, pattern in _RESOLVABILITY_PATTERNS
] + [
    ClassifierRule(name, pattern, _path_mismatch)
    for name, pattern in _PATH_MISMATCH_PATTERNS
]


def classify(
    stderr: str,
    go_mod_path: str = "go.mod",
    *,
    workdir: str | None = None,
) -> DependencyFileError:
    """Return the error describing a failed toolchain run.

    *workdir* is stripped from the text first so messages don't leak the
    temporary checkout location. *go_mod_path* is the go.mod path relative
    to the repository root, used in the error payload.
    """
    if workdir:
        stderr = stderr.replace(workdir, "")

    for rule in RULES:
        match = rule.match(stderr)
        if match:
            return rule.build(match, stderr, go_mod_path)

    tail = "".join(stderr.splitlines(keepends=True)[-_FALLBACK_TAIL_LINES:]).strip()
    return DependencyFileNotParseable(go_mod_path, tail)
