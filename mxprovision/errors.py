class ProvisioningError(Exception):
    """Base class for every failure that stops a step.

    ``step`` is filled in by the pipeline when the error escapes a step so the
    final log line can name it.
    """

    def __init__(self, message, step=None, remediation=None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.remediation = remediation

    def __str__(self):
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class InputError(ProvisioningError):
    """A required input is missing or invalid."""


class WriteError(ProvisioningError):
    """A file or directory could not be created or written."""


class ConfigValidationError(ProvisioningError):
    """A syntax checker rejected a freshly written artifact."""


class ServiceError(ProvisioningError):
    """A service failed to restart or did not report active."""


class CommandError(ProvisioningError):
    """An external command exited non-zero."""

    def __init__(self, cmd, returncode, stderr="", step=None):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({returncode}): {' '.join(self.cmd)}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message, step=step)
