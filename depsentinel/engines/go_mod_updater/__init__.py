"""go.mod updater engine: apply dependency version changes to go.mod/go.sum."""

from depsentinel.engines.go_mod_updater.classifier import classify
from depsentinel.engines.go_mod_updater.models import ManifestSnapshot, UpdatedFiles
from depsentinel.engines.go_mod_updater.toolchain import (
    CommandResult,
    CommandRunner,
    SubprocessRunner,
)
from depsentinel.engines.go_mod_updater.updater import GoModUpdater, normalize_version
from depsentinel.engines.go_mod_updater.workdir import RepoLocation

__all__ = [
    "CommandResult",
    "CommandRunner",
    "GoModUpdater",
    "ManifestSnapshot",
    "RepoLocation",
    "SubprocessRunner",
    "UpdatedFiles",
    "classify",
    "normalize_version",
]
