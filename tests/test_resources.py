"""Unit tests for the resource ensurer and atomic writes."""

from __future__ import annotations

import os

import pytest

from mxprovision.errors import WriteError
from mxprovision.resources import ensure_directory, ensure_file, rooted, write_file


class TestEnsureDirectory:
    def test_creates_missing_directory_with_parents(self, tmp_path) -> None:
        target = tmp_path / "etc" / "opendkim" / "keys"
        assert ensure_directory(str(target)) is True
        assert target.is_dir()

    def test_existing_directory_is_left_alone(self, tmp_path) -> None:
        target = tmp_path / "keys"
        target.mkdir()
        (target / "mail.private").write_text("secret")
        assert ensure_directory(str(target)) is False
        assert (target / "mail.private").read_text() == "secret"

    def test_twice_same_as_once(self, tmp_path) -> None:
        target = tmp_path / "a" / "b"
        ensure_directory(str(target))
        ensure_directory(str(target))
        assert sorted(os.listdir(tmp_path / "a")) == ["b"]

    def test_failure_raises_write_error(self, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(WriteError):
            ensure_directory(str(blocker / "sub"))


class TestEnsureFile:
    def test_creates_empty_file(self, tmp_path) -> None:
        target = tmp_path / "trusted.hosts"
        assert ensure_file(str(target)) is True
        assert target.read_text() == ""

    def test_never_overwrites(self, tmp_path) -> None:
        target = tmp_path / "trusted.hosts"
        target.write_text("127.0.0.1\n")
        assert ensure_file(str(target)) is False
        assert ensure_file(str(target)) is False
        assert target.read_text() == "127.0.0.1\n"

    def test_missing_parent_raises_write_error(self, tmp_path) -> None:
        with pytest.raises(WriteError):
            ensure_file(str(tmp_path / "missing" / "file"))


class TestWriteFile:
    def test_replaces_content_without_leftovers(self, tmp_path) -> None:
        target = tmp_path / "db.example.com"
        target.write_text("old")
        write_file(str(target), "new\n")
        assert target.read_text() == "new\n"
        assert os.listdir(tmp_path) == ["db.example.com"]

    def test_applies_mode(self, tmp_path) -> None:
        target = tmp_path / "mail.private"
        write_file(str(target), "key", mode=0o600)
        assert (target.stat().st_mode & 0o777) == 0o600

    def test_missing_directory_raises_write_error(self, tmp_path) -> None:
        with pytest.raises(WriteError):
            write_file(str(tmp_path / "nope" / "file"), "x")


def test_rooted_places_system_path_under_root() -> None:
    assert rooted("/tmp/root", "/etc/bind/named.conf.local") == "/tmp/root/etc/bind/named.conf.local"
    assert rooted("/", "/etc/hosts") == "/etc/hosts"
