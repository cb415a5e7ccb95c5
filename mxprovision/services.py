import logging

from mxprovision.commands import run_command
from mxprovision.errors import ServiceError

logger = logging.getLogger(__name__)

LOG_SOURCES = {
    "bind9": "/var/log/syslog",
    "named": "/var/log/syslog",
    "opendkim": "/var/log/syslog",
    "postfix": "/var/log/mail.log",
    "apache2": "/var/log/apache2/error.log",
}


def log_hint(service):
    hint = f"sudo journalctl -xeu {service}.service"
    source = LOG_SOURCES.get(service)
    if source:
        hint += f" (or {source})"
    return hint


class ServiceController:
    def __init__(self, runner=run_command):
        self.runner = runner

    def is_active(self, service):
        result = self.runner(["systemctl", "is-active", service], check=False)
        return (result.stdout or "").strip() == "active"

    def restart_and_confirm(self, service):
        logger.info("Restarting %s service...", service)
        result = self.runner(["systemctl", "restart", service], check=False)
        if result.returncode != 0:
            raise ServiceError(
                f"{service} failed to restart. Check {log_hint(service)} for details.",
                remediation=f"Inspect the logs with: {log_hint(service)}",
            )
        if not self.is_active(service):
            raise ServiceError(
                f"{service} is not active after restart. Check {log_hint(service)} for details.",
                remediation=f"Inspect the logs with: {log_hint(service)}",
            )
        logger.info("%s restarted successfully.", service)
