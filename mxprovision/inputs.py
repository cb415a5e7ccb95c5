import configparser
import logging
import os

from rich.prompt import Prompt

from mxprovision.context import (
    DEFAULT_DB_NAME,
    DEFAULT_DB_USER,
    ProvisioningContext,
    validate_domain,
    validate_ip,
)
from mxprovision.errors import InputError

logger = logging.getLogger(__name__)

CONFIG_FILE = "/etc/mxprovision.ini"
CONFIG_SECTION = "server"
REQUIRED = ("domain", "server_ip")

# (field, prompt text, default, secret)
PROMPTS = [
    ("domain", "Enter your primary domain name (e.g., example.com)", None, False),
    ("server_ip", "Enter your server IP address (e.g., 203.0.113.10)", None, False),
    ("mysql_root_password", "Enter your MySQL root password", None, True),
    ("db_name", f"Enter the ISPConfig database name (default: {DEFAULT_DB_NAME})", DEFAULT_DB_NAME, False),
    ("db_user", f"Enter the ISPConfig database username (default: {DEFAULT_DB_USER})", DEFAULT_DB_USER, False),
    ("db_password", "Enter the ISPConfig database password", None, True),
    ("install_ssl", "Would you like to install SSL using Let's Encrypt? (yes/no)", "no", False),
]

_TRUE = {"yes", "y", "true", "1", "on"}
_FALSE = {"no", "n", "false", "0", "off", ""}


def rich_ask(label, password=False):
    return Prompt.ask(label, password=password, default="", show_default=False)


def parse_bool(value, name):
    value = str(value).strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InputError(f"Invalid value for {name}: {value!r} (expected yes or no)")


def load_config_file(path):
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(path) as f:
            parser.read_file(f)
    except configparser.Error as e:
        raise InputError(f"Cannot parse config file {path}: {e}") from e
    if not parser.has_section(CONFIG_SECTION):
        raise InputError(f"Config file {path} has no [{CONFIG_SECTION}] section")
    return dict(parser.items(CONFIG_SECTION))


def prompt_inputs(ask):
    raw = {}
    for name, label, default, secret in PROMPTS:
        answer = (ask(label, password=secret) or "").strip()
        raw[name] = answer or (default or "")
    return raw


def build_context(raw):
    """Normalise raw string values into a validated ProvisioningContext."""
    values = {k: (v.strip() if isinstance(v, str) else v) for k, v in raw.items()}
    values["domain"] = (values.get("domain") or "").lower().rstrip(".")

    missing = [name for name in REQUIRED if not values.get(name)]
    if missing:
        raise InputError("Missing required input: " + ", ".join(missing))
    if not validate_domain(values["domain"]):
        raise InputError(f"Invalid domain name: {values['domain']!r}")
    if not validate_ip(values["server_ip"]):
        raise InputError(f"Invalid IPv4 address: {values['server_ip']!r}")

    return ProvisioningContext(
        domain=values["domain"],
        server_ip=values["server_ip"],
        mysql_root_password=values.get("mysql_root_password", ""),
        db_name=values.get("db_name") or DEFAULT_DB_NAME,
        db_user=values.get("db_user") or DEFAULT_DB_USER,
        db_password=values.get("db_password", ""),
        install_ssl=parse_bool(values.get("install_ssl", "no"), "install_ssl"),
        install_panel=parse_bool(values.get("install_panel", "no"), "install_panel"),
        admin_email=values.get("admin_email", ""),
    )


class InputResolver:
    """Produces the ProvisioningContext from the config file or by prompting."""

    def __init__(self, config_path=CONFIG_FILE, ask=rich_ask):
        self.config_path = config_path
        self.ask = ask

    def resolve(self):
        if self.config_path and os.path.isfile(self.config_path):
            logger.info("Reading inputs from %s", self.config_path)
            raw = load_config_file(self.config_path)
        else:
            logger.info("No config file found at %s, prompting for inputs", self.config_path)
            raw = prompt_inputs(self.ask)
        context = build_context(raw)
        logger.info("Resolved inputs: %s", context.masked())
        return context
