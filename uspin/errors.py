from __future__ import annotations

from typing import Optional, Sequence


class UspinError(RuntimeError):
    pass


class CommandError(UspinError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}\n{stderr}")


class CommandTimeout(UspinError):
    pass


class HostPrerequisiteMissing(UspinError):
    """A required host tool or asset could not be found."""


class ConfigError(UspinError, ValueError):
    pass


class SpecFormatError(UspinError, ValueError):
    def __init__(self, message: str, line_number: Optional[int] = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)


class MissingRepoValue(SpecFormatError):
    pass


class MountError(UspinError):
    pass


class PathAlreadyTracked(MountError):
    pass


class UnknownMount(MountError):
    pass


class MountFailure(MountError):
    pass


class UnknownOperationVariant(UspinError):
    pass


class NotEnoughOps(UspinError):
    pass


class UnknownPackageManager(UspinError):
    pass


class UnknownLoader(UspinError):
    pass


class NoUsableBootloader(UspinError):
    pass


class UnsupportedCapability(UspinError):
    pass


class NoKernelFound(UspinError):
    pass


class UnknownImageType(UspinError):
    pass


class InvalidTransition(UspinError):
    """A builder stage was invoked out of order."""


class UnsafeWorkspace(UspinError):
    """The workspace cannot be purged without destroying something else."""
