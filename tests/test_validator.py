"""Unit tests for config and network validation."""

from __future__ import annotations

import dns.resolver

from mxprovision.validator import Validator, resolve_a

from tests.conftest import SERVER_IP, FakeLookup


def make_validator(context, runner, lookup=None, host_lookup=lambda name: SERVER_IP) -> Validator:
    return Validator(
        context,
        root="/srv/root",
        runner=runner,
        lookup=lookup or FakeLookup(),
        host_lookup=host_lookup,
    )


class TestValidateConfig:
    def test_bind_runs_checkconf_and_each_zone(self, context, runner) -> None:
        result = make_validator(context, runner).validate_config("authoritative_dns")

        assert result.ok
        assert runner.calls == [
            ["named-checkconf", "/srv/root/etc/bind/named.conf"],
            ["named-checkzone", "example.com", "/srv/root/etc/bind/db.example.com"],
            ["named-checkzone", "mail.example.com", "/srv/root/etc/bind/db.mail.example.com"],
        ]

    def test_zone_failure_is_fatal_and_carries_checker_output(self, context, runner) -> None:
        runner.fail("named-checkzone", "mail.example.com", stderr="bad owner name")

        result = make_validator(context, runner).validate_config("authoritative_dns")

        assert not result.ok
        assert result.fatal
        assert "mail.example.com" in result.message
        assert "bad owner name" in result.message
        assert "named-checkzone" in result.remediation

    def test_checkconf_failure_stops_before_zone_checks(self, context, runner) -> None:
        runner.fail("named-checkconf")
        result = make_validator(context, runner).validate_config("authoritative_dns")
        assert not result.ok
        assert not runner.ran("named-checkzone")

    def test_mail_signing_checks_opendkim_and_postfix(self, context, runner) -> None:
        result = make_validator(context, runner).validate_config("mail_signing")
        assert result.ok
        assert runner.ran("opendkim", "-n")
        assert runner.ran("postfix", "check")

    def test_host_identity_requires_local_resolution(self, context, runner) -> None:
        result = make_validator(context, runner, host_lookup=lambda name: None).validate_config("host_identity")
        assert not result.ok
        assert result.fatal
        assert "server.example.com" in result.message

    def test_steps_without_checks_pass(self, context, runner) -> None:
        assert make_validator(context, runner).validate_config("summary").ok
        assert runner.calls == []


class TestValidateNetwork:
    def test_matching_records_pass(self, context, runner, lookup) -> None:
        result = make_validator(context, runner, lookup).validate_network("certificate_issuance")
        assert result.ok
        assert lookup.queries == ["example.com", "mail.example.com"]

    def test_mismatch_is_advisory_with_exact_record(self, context, runner) -> None:
        lookup = FakeLookup({"example.com": [SERVER_IP], "mail.example.com": ["192.0.2.1"]})

        result = make_validator(context, runner, lookup).validate_network("certificate_issuance")

        assert not result.ok
        assert not result.fatal
        assert "A record for mail.example.com" in result.remediation
        assert "- Name: mail" in result.remediation
        assert f"- Value: {SERVER_IP}" in result.remediation
        assert "dig +short mail.example.com" in result.remediation
        assert "found: 192.0.2.1" in result.remediation
        assert "A record for example.com" not in result.remediation

    def test_missing_records_count_as_mismatch(self, context, runner) -> None:
        result = make_validator(context, runner, FakeLookup()).validate_network("certificate_issuance")
        assert not result.ok
        assert "found: nothing" in result.remediation

    def test_other_steps_have_no_network_gate(self, context, runner, lookup) -> None:
        assert make_validator(context, runner, lookup).validate_network("authoritative_dns").ok
        assert lookup.queries == []


class TestResolveA:
    def test_missing_resolver_configuration_means_no_records(self, monkeypatch) -> None:
        def no_config(*args, **kwargs):
            raise dns.resolver.NoResolverConfiguration("no nameservers")

        monkeypatch.setattr(dns.resolver, "Resolver", no_config)
        assert resolve_a("example.com") == []

    def test_server_failure_means_no_records(self, monkeypatch) -> None:
        class ServfailResolver:
            def resolve(self, name, rdtype):
                raise dns.resolver.NoNameservers()

        monkeypatch.setattr(dns.resolver, "Resolver", ServfailResolver)
        assert resolve_a("example.com") == []
