"""Error taxonomy shared by discovery, search, the store and the alert engine."""


class HostwatchError(Exception):
    """Base class for all hostwatch errors."""


class ConfigurationNotFound(HostwatchError):
    """An (app, log) pair is not present in the configured apps."""
    def __init__(self, app_name, log_name=None):
        target = f"app={app_name}" if log_name is None else f"app={app_name}, log={log_name}"
        super().__init__(f"Log configuration not found ({target})")
        self.app_name = app_name
        self.log_name = log_name


class LogFileSystemError(HostwatchError):
    """A configured log path exists but cannot be read."""
    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path


class SubprocessFailure(HostwatchError):
    """The text-search tool could not be started or exited abnormally."""
    def __init__(self, message, command=None, returncode=None, stderr=None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class NoCompatibleFiles(HostwatchError):
    """None of the candidate files can be searched with an available tool."""


class StoreUnavailable(HostwatchError):
    """The persistent store has not been connected."""


class NotFound(HostwatchError):
    """A rule or alert id does not exist."""


class RuleValidationError(HostwatchError):
    """An alert rule definition is invalid."""


class MetricsUnavailable(HostwatchError):
    """A host metrics probe failed."""
