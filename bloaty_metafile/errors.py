"""Exception types raised by the converter."""

from typing import Optional


class BloatyMetafileError(Exception):
    """Base class for every fatal error the CLI reports."""


class InputFormatError(BloatyMetafileError):
    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ManifestParseError(BloatyMetafileError):
    """A single lock file entry could not be used. Never fatal."""


class DepthBoundError(BloatyMetafileError):
    pass


class SerializationError(BloatyMetafileError):
    """The tree or the generated metafile broke a size invariant."""


class ConfigError(BloatyMetafileError):
    pass
