"""Errors surfaced to callers of the update engines."""


class DepSentinelError(Exception):
    """Base exception for all depsentinel errors."""


class DependencyFileError(DepSentinelError):
    """A dependency file could not be updated; the toolchain said why."""


class DependencyFileNotResolvable(DependencyFileError):
    """A required module/version could not be fetched or verified.

    ``message`` holds the toolchain output from the first line that
    identified the failure onwards.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DependencyFileNotParseable(DependencyFileError):
    """Catch-all for toolchain failures that match no known pattern."""

    def __init__(self, file_path: str, message: str | None = None):
        self.file_path = file_path
        self.message = message
        text = f"{file_path} not parseable"
        if message:
            text += f": {message}"
        super().__init__(text)


class GoModulePathMismatch(DependencyFileError):
    """A fetched module declares a path different from the one it was required as."""

    def __init__(self, go_mod: str, declared_path: str, discovered_path: str):
        self.go_mod = go_mod
        self.declared_path = declared_path
        self.discovered_path = discovered_path
        super().__init__(
            f"The module path {declared_path} found in {go_mod} doesn't match "
            f"the actual path {discovered_path} declared by the dependency's go.mod"
        )


class PrivateSourceAuthenticationFailure(DepSentinelError):
    """Credentials for a non-default source were rejected or missing."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(
            "The following source could not be reached as it requires "
            "authentication (and any provided details were invalid or lacked "
            f"the required permissions): {source}"
        )
