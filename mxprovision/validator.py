import logging
import socket
from dataclasses import dataclass

import dns.exception
import dns.resolver

from mxprovision.commands import run_command
from mxprovision.resources import rooted
from mxprovision.writer import BIND_DIR, OPENDKIM_CONF

logger = logging.getLogger(__name__)

REMEDIATION_A_RECORD = """\
DNS record for {name} is missing or incorrect (found: {found}).
Instructions to fix:
  1. Log in to your domain registrar's DNS management panel.
  2. Add or update an A record for {name}:
     - Name: {label}
     - Type: A
     - Value: {server_ip}
  3. Wait for DNS propagation (can take up to 24 hours).
  4. Verify the DNS record with:
     dig +short {name}"""


@dataclass
class ValidationResult:
    ok: bool
    message: str
    fatal: bool = True
    remediation: str = ""

    @classmethod
    def passed(cls, message):
        return cls(True, message, fatal=False)


def resolve_a(name, nameservers=None, timeout=5.0):
    """A records of ``name`` as seen by public resolvers; empty on any lookup error."""
    try:
        resolver = dns.resolver.Resolver()
        if nameservers:
            resolver.nameservers = list(nameservers)
        resolver.lifetime = timeout
        answer = resolver.resolve(name, "A")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer) as e:
        logger.debug("No A record for %s: %s", name, e)
        return []
    except dns.exception.Timeout:
        logger.warning("DNS lookup for %s timed out", name)
        return []
    except dns.exception.DNSException as e:
        logger.warning("DNS lookup for %s failed: %s", name, e)
        return []
    return sorted(rr.address for rr in answer)


def resolve_host(name):
    """Resolve through the system resolver, which consults /etc/hosts."""
    try:
        return socket.gethostbyname(name)
    except OSError:
        return None


class Validator:
    """Runs the syntax checkers and live lookups that gate each step."""

    def __init__(self, context, root="/", runner=run_command, lookup=resolve_a, host_lookup=resolve_host):
        self.ctx = context
        self.root = root
        self.runner = runner
        self.lookup = lookup
        self.host_lookup = host_lookup

    def validate_config(self, step_id):
        checks = {
            "host_identity": self._check_host_identity,
            "authoritative_dns": self._check_bind,
            "mail_signing": self._check_mail_signing,
        }
        if step_id not in checks:
            return ValidationResult.passed(f"No configuration checks for {step_id}")
        return checks[step_id]()

    def validate_network(self, step_id):
        if step_id != "certificate_issuance":
            return ValidationResult.passed(f"No network checks for {step_id}")
        return self._check_public_records()

    # -------------------------------------------------------------------------
    def _run_checker(self, cmd, what, hint):
        result = self.runner(cmd, check=False)
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            return ValidationResult(
                False,
                f"{what} failed: {output or 'exit status %d' % result.returncode}",
                fatal=True,
                remediation=f"Run '{hint}' to see the full report.",
            )
        return None

    def _check_host_identity(self):
        hostname = self.ctx.hostname
        if self.host_lookup(hostname) is None:
            return ValidationResult(
                False,
                f"Hostname resolution failed for {hostname}",
                remediation="Ensure /etc/hosts maps the server address to its hostname.",
            )
        return ValidationResult.passed(f"{hostname} resolves")

    def _check_bind(self):
        named_conf = rooted(self.root, f"{BIND_DIR}/named.conf")
        failed = self._run_checker(
            ["named-checkconf", named_conf],
            "Bind9 configuration validation",
            "sudo named-checkconf",
        )
        if failed:
            return failed
        for zone in (self.ctx.domain, self.ctx.mail_host):
            zone_file = rooted(self.root, f"{BIND_DIR}/db.{zone}")
            failed = self._run_checker(
                ["named-checkzone", zone, zone_file],
                f"Zone validation for {zone}",
                f"sudo named-checkzone {zone} {zone_file}",
            )
            if failed:
                return failed
        return ValidationResult.passed("Bind9 configuration and zones are valid")

    def _check_mail_signing(self):
        conf = rooted(self.root, OPENDKIM_CONF)
        failed = self._run_checker(
            ["opendkim", "-n", "-x", conf],
            "OpenDKIM configuration validation",
            f"sudo opendkim -n -x {conf}",
        )
        if failed:
            return failed
        failed = self._run_checker(["postfix", "check"], "Postfix configuration check", "sudo postfix check")
        if failed:
            return failed
        return ValidationResult.passed("OpenDKIM and Postfix configuration are valid")

    def _check_public_records(self):
        ctx = self.ctx
        problems = []
        for name, label in ((ctx.domain, "@"), (ctx.mail_host, "mail")):
            addresses = self.lookup(name)
            if ctx.server_ip in addresses:
                logger.info("DNS record for %s points to %s", name, ctx.server_ip)
                continue
            logger.warning("DNS record for %s is not pointing to %s", name, ctx.server_ip)
            problems.append(
                REMEDIATION_A_RECORD.format(
                    name=name,
                    label=label,
                    server_ip=ctx.server_ip,
                    found=", ".join(addresses) or "nothing",
                )
            )
        if problems:
            return ValidationResult(
                False,
                "Public DNS does not point to this server yet",
                fatal=False,
                remediation="\n".join(problems),
            )
        return ValidationResult.passed(f"{ctx.domain} and {ctx.mail_host} resolve to {ctx.server_ip}")
