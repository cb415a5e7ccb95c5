import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jinja2 import Template, TemplateError

from mxprovision import templates
from mxprovision.errors import WriteError
from mxprovision.resources import ensure_directory, rooted, write_file

logger = logging.getLogger(__name__)

BIND_DIR = "/etc/bind"
OPENDKIM_CONF = "/etc/opendkim.conf"
OPENDKIM_DIR = "/etc/opendkim"
OPENDKIM_SOCKET_DIR = "/var/spool/postfix/opendkim"
OPENDKIM_DEFAULTS = "/etc/default/opendkim"
OPENDKIM_UNIT_OVERRIDE = "/etc/systemd/system/opendkim.service.d/override.conf"
HOSTS_FILE = "/etc/hosts"
HOSTNAME_FILE = "/etc/hostname"
DKIM_SELECTOR = "mail"
ZONE_TTL = 604800

_SERIAL_RE = re.compile(r"(\d{1,10})\s*;\s*serial", re.IGNORECASE)


# -----------------------------------------------------------------------------
# Rendered artifacts
# -----------------------------------------------------------------------------
@dataclass
class ZoneRecord:
    origin: str
    path: str
    file: str
    serial: int
    primary_ns: str
    hostmaster: str
    ns: list
    a_records: list
    mx: str = ""
    txt_records: list = field(default_factory=list)
    ttl: int = ZONE_TTL


@dataclass
class DaemonConfig:
    path: str
    text: str
    mode: int = 0o644


@dataclass
class WrittenFiles:
    """Files replaced by one ``ConfigWriter.write`` call and what they held before.

    ``previous`` maps each path to ``(text, mode)``, or ``None`` when the file
    did not exist.
    """

    previous: dict = field(default_factory=dict)

    @property
    def paths(self):
        return list(self.previous)

    def restore(self):
        for path, saved in self.previous.items():
            if saved is None:
                if os.path.exists(path):
                    os.unlink(path)
                    logger.info("Removed rejected file: %s", path)
                continue
            text, mode = saved
            write_file(path, text, mode)
            logger.info("Restored previous version of %s", path)


def snapshot(path):
    try:
        with open(path) as f:
            text = f.read()
        return text, os.stat(path).st_mode & 0o7777
    except FileNotFoundError:
        return None
    except OSError as e:
        raise WriteError(f"Cannot read {path}: {e}") from e


# -----------------------------------------------------------------------------
# Utility Functions
# -----------------------------------------------------------------------------
def render_template(template_str, **context):
    try:
        text = Template(template_str, trim_blocks=True, lstrip_blocks=True).render(**context)
    except TemplateError as e:
        raise WriteError(f"Template rendering error: {e}") from e
    return text.strip("\n") + "\n"


def read_serial(path):
    """Serial of an existing zone file, or None."""
    try:
        with open(path) as f:
            match = _SERIAL_RE.search(f.read())
    except FileNotFoundError:
        return None
    except OSError as e:
        raise WriteError(f"Cannot read {path}: {e}") from e
    return int(match.group(1)) if match else None


def next_serial(path, now=None):
    """YYYYMMDDnn serial that is always above the one already in ``path``."""
    now = now or datetime.now()
    candidate = int(now.strftime("%Y%m%d")) * 100
    previous = read_serial(path)
    if previous is not None and previous >= candidate:
        candidate = previous + 1
    return candidate


def chunk_string(s, size=200):
    return " ".join([f'"{s[i:i+size]}"' for i in range(0, len(s), size)])


def generate_dkim_keys():
    priv = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem_pub = priv.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    dkim_pub = "".join(line for line in pem_pub.decode().splitlines() if "-----" not in line)
    pem_priv = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return dkim_pub, pem_priv.decode()


# -----------------------------------------------------------------------------
# Config Writer
# -----------------------------------------------------------------------------
class ConfigWriter:
    """Renders each step's artifacts from the context and writes them atomically."""

    def __init__(self, context, root="/", clock=datetime.now):
        self.ctx = context
        self.root = root
        self.clock = clock

    def path(self, system_path):
        return rooted(self.root, system_path)

    @property
    def dkim_key_dir(self):
        return self.path(f"{OPENDKIM_DIR}/keys/{self.ctx.domain}")

    @property
    def dkim_private_key(self):
        return os.path.join(self.dkim_key_dir, f"{DKIM_SELECTOR}.private")

    @property
    def dkim_txt_record(self):
        return os.path.join(self.dkim_key_dir, f"{DKIM_SELECTOR}.txt")

    def write(self, step_id):
        renderers = {
            "host_identity": self.host_identity_artifacts,
            "authoritative_dns": self.dns_artifacts,
            "mail_signing": self.mail_signing_artifacts,
        }
        if step_id not in renderers:
            raise ValueError(f"No configuration artifacts for step {step_id!r}")
        artifacts = renderers[step_id]()
        for directory in sorted({os.path.dirname(a.path) for a in artifacts}):
            ensure_directory(directory)
        written = WrittenFiles({artifact.path: snapshot(artifact.path) for artifact in artifacts})
        try:
            for artifact in artifacts:
                write_file(artifact.path, artifact.text, artifact.mode)
        except WriteError:
            written.restore()
            raise
        return written

    # -- host identity --------------------------------------------------------
    def host_identity_artifacts(self):
        ctx = self.ctx
        hosts = render_template(
            templates.HOSTS,
            hostname=ctx.hostname,
            short_hostname=ctx.short_hostname,
            server_ip=ctx.server_ip,
        )
        return [
            DaemonConfig(self.path(HOSTS_FILE), hosts),
            DaemonConfig(self.path(HOSTNAME_FILE), ctx.hostname + "\n"),
        ]

    # -- authoritative DNS ----------------------------------------------------
    def zones(self):
        ctx = self.ctx
        now = self.clock()
        ns = [ctx.ns1, ctx.ns2]
        hostmaster = f"admin.{ctx.domain}"

        primary_file = f"{BIND_DIR}/db.{ctx.domain}"
        primary = ZoneRecord(
            origin=ctx.domain,
            path=self.path(primary_file),
            file=primary_file,
            serial=next_serial(self.path(primary_file), now),
            primary_ns=ctx.ns1,
            hostmaster=hostmaster,
            ns=ns,
            a_records=[(name, ctx.server_ip) for name in ("@", "ns1", "ns2", ctx.short_hostname, "mail")],
            mx=f"10 {ctx.mail_host}.",
            txt_records=[
                ("@", f"v=spf1 a mx ip4:{ctx.server_ip} -all"),
                ("_dmarc", f"v=DMARC1; p=none; rua=mailto:postmaster@{ctx.domain}"),
            ],
        )

        mail_file = f"{BIND_DIR}/db.{ctx.mail_host}"
        mail = ZoneRecord(
            origin=ctx.mail_host,
            path=self.path(mail_file),
            file=mail_file,
            serial=next_serial(self.path(mail_file), now),
            primary_ns=ctx.ns1,
            hostmaster=hostmaster,
            ns=ns,
            a_records=[("@", ctx.server_ip)],
        )
        return [primary, mail]

    def render_zone(self, zone):
        return render_template(templates.ZONE, zone=zone)

    def dns_artifacts(self):
        zones = self.zones()
        local_conf = render_template(templates.NAMED_CONF_LOCAL, zones=zones)
        artifacts = [DaemonConfig(self.path(f"{BIND_DIR}/named.conf.local"), local_conf)]
        artifacts.extend(DaemonConfig(zone.path, self.render_zone(zone)) for zone in zones)
        return artifacts

    # -- mail signing ---------------------------------------------------------
    def mail_signing_artifacts(self):
        ctx = self.ctx
        values = {
            "domain": ctx.domain,
            "server_ip": ctx.server_ip,
            "selector": DKIM_SELECTOR,
            "key_table": f"{OPENDKIM_DIR}/key.table",
            "signing_table": f"{OPENDKIM_DIR}/signing.table",
            "trusted_hosts": f"{OPENDKIM_DIR}/trusted.hosts",
            "private_key": f"{OPENDKIM_DIR}/keys/{ctx.domain}/{DKIM_SELECTOR}.private",
            "socket": f"local:{OPENDKIM_SOCKET_DIR}/opendkim.sock",
        }
        return [
            DaemonConfig(self.path(OPENDKIM_CONF), render_template(templates.OPENDKIM_CONF, **values)),
            DaemonConfig(self.path(values["key_table"]), render_template(templates.KEY_TABLE, **values)),
            DaemonConfig(self.path(values["signing_table"]), render_template(templates.SIGNING_TABLE, **values)),
            DaemonConfig(self.path(values["trusted_hosts"]), render_template(templates.TRUSTED_HOSTS, **values)),
            DaemonConfig(self.path(OPENDKIM_DEFAULTS), render_template(templates.OPENDKIM_DEFAULTS, **values)),
            DaemonConfig(self.path(OPENDKIM_UNIT_OVERRIDE), render_template(templates.OPENDKIM_UNIT_OVERRIDE, **values)),
        ]

    def ensure_dkim_key(self):
        """Generate the DKIM key pair unless a private key is already present.

        Returns True when a new key was written.
        """
        ensure_directory(self.dkim_key_dir, mode=0o700)
        if os.path.exists(self.dkim_private_key):
            logger.info("DKIM key already exists, keeping it: %s", self.dkim_private_key)
            return False
        public_key, private_pem = generate_dkim_keys()
        txt = render_template(
            templates.DKIM_TXT,
            selector=DKIM_SELECTOR,
            domain=self.ctx.domain,
            public_key_chunks=chunk_string("p=" + public_key, 200),
        )
        write_file(self.dkim_private_key, private_pem, mode=0o600)
        write_file(self.dkim_txt_record, txt)
        logger.info("Generated DKIM key for %s (selector %s)", self.ctx.domain, DKIM_SELECTOR)
        return True

    def read_dkim_record(self):
        try:
            with open(self.dkim_txt_record) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
