import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime

from mxprovision import templates
from mxprovision.commands import command_exists, run_command
from mxprovision.errors import ProvisioningError
from mxprovision.log import console
from mxprovision.resources import ensure_directory, ensure_file, rooted, write_file
from mxprovision.services import ServiceController
from mxprovision.validator import ValidationResult, Validator, resolve_a, resolve_host
from mxprovision.writer import OPENDKIM_DIR, OPENDKIM_SOCKET_DIR, ConfigWriter, render_template

logger = logging.getLogger(__name__)

CERTBOT_LOG = "/var/log/letsencrypt/letsencrypt.log"
ISPCONFIG_WORK_DIR = "/tmp/ispconfig3_install"
ISPCONFIG_TARBALL = "/tmp/ispconfig.tar.gz"
BIND_CACHE_DIR = "/var/cache/bind"
MANAGED_KEYS = f"{BIND_CACHE_DIR}/managed-keys.bind"

AUTOINSTALL_INI = """
[install]
language=en
install_mode=standard
hostname={{ hostname }}
mysql_hostname=localhost
mysql_port=3306
mysql_root_user=root
mysql_root_password={{ mysql_root_password }}
mysql_database={{ db_name }}
mysql_charset=utf8
http_server=apache
ispconfig_port=8080
ispconfig_use_ssl=y

[expert]
mysql_ispconfig_user={{ db_user }}
mysql_ispconfig_password={{ db_password }}
"""


def is_root():
    return os.geteuid() == 0


@dataclass
class Toolbox:
    """Collaborators shared by the steps; tests swap in fakes."""

    root: str = "/"
    runner: object = run_command
    lookup: object = resolve_a
    host_lookup: object = resolve_host
    clock: object = datetime.now
    is_root: object = is_root
    command_exists: object = command_exists
    dns_service: str = "bind9"
    packages: list = field(default_factory=lambda: list(templates.PACKAGES))

    def writer(self, ctx):
        return ConfigWriter(ctx, root=self.root, clock=self.clock)

    def validator(self, ctx):
        return Validator(ctx, root=self.root, runner=self.runner, lookup=self.lookup, host_lookup=self.host_lookup)

    @property
    def services(self):
        return ServiceController(runner=self.runner)

    def path(self, system_path):
        return rooted(self.root, system_path)


class Step:
    """One unit of the pipeline.

    The orchestrator calls ``precondition``, ``gate``, ``apply``, ``validate``
    and ``restart`` in that order. A precondition returning a reason skips a
    ``skippable`` step and aborts any other; ``fatal`` decides whether a failure
    stops the run.
    """

    name = ""
    title = ""
    fatal = True
    skippable = False
    requires = ("domain", "server_ip")

    def __init__(self, tools):
        self.tools = tools
        self.written = None

    def precondition(self, ctx):
        return None

    def gate(self, ctx):
        return ValidationResult.passed("no gate")

    def apply(self, ctx):
        raise NotImplementedError

    def validate(self, ctx):
        return ValidationResult.passed("nothing to validate")

    def restart(self, ctx):
        pass

    def rollback(self, ctx):
        """Put back the files this run replaced; called when validation rejects them."""
        if self.written is None:
            return
        self.written.restore()
        self.written = None

    def run_commands(self, *commands, **kwargs):
        for cmd in commands:
            self.tools.runner(cmd, **kwargs)


# -----------------------------------------------------------------------------
# Steps, in pipeline order
# -----------------------------------------------------------------------------
class Prerequisites(Step):
    name = "prerequisites"
    title = "Prerequisites"
    requires = ()

    def precondition(self, ctx):
        if not self.tools.is_root():
            return "This program must be run as root. Use sudo."
        if not self.tools.command_exists("apt-get"):
            return "apt-get not found; only Debian and Ubuntu hosts are supported."
        return None

    def apply(self, ctx):
        env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
        logger.info("Updating and upgrading the system...")
        self.run_commands(["apt-get", "update"], ["apt-get", "upgrade", "-y"], env=env)
        logger.info("Installing necessary packages...")
        self.run_commands(["apt-get", "install", "-y", *self.tools.packages], env=env)


class HostIdentity(Step):
    name = "host_identity"
    title = "Host Identity"

    def apply(self, ctx):
        logger.info("Setting hostname to %s...", ctx.hostname)
        self.run_commands(["hostnamectl", "set-hostname", ctx.hostname])
        self.written = self.tools.writer(ctx).write(self.name)

    def validate(self, ctx):
        return self.tools.validator(ctx).validate_config(self.name)


class AuthoritativeDNS(Step):
    name = "authoritative_dns"
    title = "Authoritative DNS (Bind9)"

    def apply(self, ctx):
        logger.info("Configuring Bind9 for %s and %s...", ctx.ns1, ctx.ns2)
        ensure_directory(self.tools.path(BIND_CACHE_DIR))
        ensure_file(self.tools.path(MANAGED_KEYS))
        self.written = self.tools.writer(ctx).write(self.name)

    def validate(self, ctx):
        return self.tools.validator(ctx).validate_config(self.name)

    def restart(self, ctx):
        self.tools.services.restart_and_confirm(self.tools.dns_service)


class MailSigning(Step):
    name = "mail_signing"
    title = "Mail Signing (Postfix + OpenDKIM)"

    def apply(self, ctx):
        logger.info("Setting up Postfix and OpenDKIM...")
        writer = self.tools.writer(ctx)
        ensure_directory(self.tools.path(OPENDKIM_DIR))
        writer.ensure_dkim_key()
        self.written = writer.write(self.name)
        ensure_directory(self.tools.path(OPENDKIM_SOCKET_DIR))
        self.run_commands(
            ["chown", "-R", "opendkim:opendkim", self.tools.path(OPENDKIM_DIR)],
            ["chmod", "-R", "go-rwx", self.tools.path(f"{OPENDKIM_DIR}/keys")],
            ["chown", "opendkim:postfix", self.tools.path(OPENDKIM_SOCKET_DIR)],
            ["usermod", "-aG", "opendkim", "postfix"],
        )
        settings = [f"{key}={value}" for key, value in templates.POSTFIX_MILTER.items()]
        self.run_commands(["postconf", "-e", *settings])
        self.run_commands(["systemctl", "daemon-reload"])

    def validate(self, ctx):
        return self.tools.validator(ctx).validate_config(self.name)

    def restart(self, ctx):
        services = self.tools.services
        services.restart_and_confirm("opendkim")
        services.restart_and_confirm("postfix")


class CertificateIssuance(Step):
    name = "certificate_issuance"
    title = "SSL Certificates (Let's Encrypt)"
    fatal = False
    skippable = True

    def precondition(self, ctx):
        if not ctx.install_ssl:
            return "SSL installation was not requested."
        return None

    def gate(self, ctx):
        logger.info("Checking DNS records for %s and %s...", ctx.domain, ctx.mail_host)
        return self.tools.validator(ctx).validate_network(self.name)

    def apply(self, ctx):
        logger.info("DNS records verified. Proceeding with SSL installation...")
        cmd = [
            "certbot", "--apache", "--non-interactive", "--agree-tos", "--keep-until-expiring",
            "-m", ctx.contact_email,
            "-d", ctx.hostname, "-d", ctx.domain, "-d", ctx.mail_host,
        ]
        result = self.tools.runner(cmd, check=False)
        if result.returncode != 0:
            raise ProvisioningError(
                "Certbot failed to issue certificates.",
                remediation=f"Check {CERTBOT_LOG} for details, verify DNS records and re-run.",
            )
        logger.info("SSL certificates installed successfully.")


class ControlPanel(Step):
    name = "control_panel"
    title = "ISPConfig Control Panel"
    skippable = True
    requires = ("domain", "server_ip", "mysql_root_password", "db_password")

    def precondition(self, ctx):
        if not ctx.install_panel:
            return "ISPConfig installation was not requested."
        return None

    def apply(self, ctx):
        work_dir = self.tools.path(ISPCONFIG_WORK_DIR)
        tarball = self.tools.path(ISPCONFIG_TARBALL)
        logger.info("Downloading ISPConfig...")
        self.run_commands(["wget", "-q", "-O", tarball, templates.ISPCONFIG_URL])
        ensure_directory(work_dir)
        logger.info("Extracting ISPConfig installer...")
        self.run_commands(["tar", "-xzf", tarball, "-C", work_dir, "--strip-components=1"])

        autoinstall = os.path.join(work_dir, "autoinstall.ini")
        write_file(
            autoinstall,
            render_template(
                AUTOINSTALL_INI,
                hostname=ctx.hostname,
                mysql_root_password=ctx.mysql_root_password,
                db_name=ctx.db_name,
                db_user=ctx.db_user,
                db_password=ctx.db_password,
            ),
            mode=0o600,
        )
        logger.info("Starting ISPConfig installation...")
        try:
            self.tools.runner(
                ["php", "install.php", f"--autoinstall={autoinstall}"],
                cwd=os.path.join(work_dir, "install"),
                interactive=True,
            )
        finally:
            logger.info("Cleaning up temporary installation files...")
            shutil.rmtree(work_dir, ignore_errors=True)
            try:
                os.unlink(tarball)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not remove %s: %s", tarball, e)

    def restart(self, ctx):
        self.tools.services.restart_and_confirm("apache2")


class Summary(Step):
    name = "summary"
    title = "Final Instructions"
    fatal = False

    def apply(self, ctx):
        text = render_template(
            templates.SUMMARY,
            hostname=ctx.hostname,
            mail_host=ctx.mail_host,
            ns1=ctx.ns1,
            ns2=ctx.ns2,
            server_ip=ctx.server_ip,
            domain=ctx.domain,
            dkim_record=self.tools.writer(ctx).read_dkim_record(),
            install_panel=ctx.install_panel,
        )
        logger.info("Installation complete!")
        console.print(text, style="info", highlight=False, markup=False)


STEP_CLASSES = [Prerequisites, HostIdentity, AuthoritativeDNS, MailSigning, CertificateIssuance, ControlPanel, Summary]
