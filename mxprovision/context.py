import ipaddress
import re
from dataclasses import dataclass, fields

from mxprovision.errors import InputError

DEFAULT_DB_NAME = "dbispconfig"
DEFAULT_DB_USER = "ispconfig_user"

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def validate_ip(ip_str):
    try:
        return isinstance(ipaddress.ip_address(ip_str), ipaddress.IPv4Address)
    except ValueError:
        return False


def validate_domain(domain):
    if not domain or len(domain) > 253:
        return False
    labels = domain.split(".")
    return len(labels) >= 2 and all(_LABEL_RE.match(label) for label in labels)


@dataclass(frozen=True)
class ProvisioningContext:
    """Resolved parameters for one provisioning run.

    Built once by the input resolver and handed to every step; nothing else
    about the run is shared between steps.
    """

    domain: str
    server_ip: str
    mysql_root_password: str = ""
    db_name: str = DEFAULT_DB_NAME
    db_user: str = DEFAULT_DB_USER
    db_password: str = ""
    install_ssl: bool = False
    install_panel: bool = False
    admin_email: str = ""

    @property
    def hostname(self):
        return f"server.{self.domain}"

    @property
    def short_hostname(self):
        return self.hostname.split(".")[0]

    @property
    def mail_host(self):
        return f"mail.{self.domain}"

    @property
    def ns1(self):
        return f"ns1.{self.domain}"

    @property
    def ns2(self):
        return f"ns2.{self.domain}"

    @property
    def contact_email(self):
        return self.admin_email or f"admin@{self.domain}"

    def require(self, *names, step=None):
        missing = [name for name in names if getattr(self, name) in ("", None)]
        if missing:
            raise InputError(
                "Missing required input: " + ", ".join(missing),
                step=step,
                remediation="Add the values to the config file or answer the prompts.",
            )

    def masked(self):
        """Field values safe for logging."""
        values = {}
        for f in fields(self):
            name, value = f.name, getattr(self, f.name)
            if "password" in name and value:
                value = "********"
            values[name] = value
        return values
