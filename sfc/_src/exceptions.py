from contextlib import contextmanager
from typing import Optional


class SfcError(Exception):
    """Base class for every failure raised by sfc.

    Used directly for errors that only wrap a chain of context.
    """
    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(self.msg)


class NotFoundError(SfcError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found")


class AlreadyExistsError(SfcError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' already exists")


class ValidationError(SfcError):
    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"invalid {field} '{value}': {reason}")


class FilesystemError(SfcError):
    def __init__(self, operation: str, path: Optional[str] = None, cause: Optional[BaseException] = None):
        self.operation = operation
        self.path = path
        self.cause = cause
        msg = f"IO error during {operation}"
        if cause is not None:
            msg += f": {cause.strerror or cause}" if isinstance(cause, OSError) else f": {cause}"
        super().__init__(msg)


class CommandError(SfcError):
    def __init__(self, command, exit_code: Optional[int], stderr: str):
        self.command = command if isinstance(command, str) else " ".join(command)
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        if exit_code is None:
            msg = f"command `{self.command}` failed: {self.stderr}"
        else:
            msg = f"command `{self.command}` failed with exit code {exit_code}: {self.stderr}"
        super().__init__(msg)


class PermissionDeniedError(SfcError):
    def __init__(self, operation: str, required: str):
        self.operation = operation
        self.required = required
        super().__init__(f"permission denied for {operation}: {required} required")


class ConfigError(SfcError):
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path is None:
            super().__init__(f"configuration error: {message}")
        else:
            super().__init__(f"configuration error in {path}: {message}")


@contextmanager
def io_context(operation: str, path=None):
    """Re-raise any ``OSError`` in the block as a ``FilesystemError``.

    Parameters
    ----------
    operation: str
        Short description of what was being done, eg. "reading store directory"
    path: str | Path, optional
        The path being operated on
    """
    try:
        yield
    except PermissionError as err:
        raise PermissionDeniedError(operation, f"access to {path}") from err
    except OSError as err:
        raise FilesystemError(operation, None if path is None else str(path), err) from err
