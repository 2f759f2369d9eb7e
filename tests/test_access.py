"""Tests for access module."""

import json
import os
import shutil

import pytest

from diskscope import config
from diskscope.access import (
    AccessBroker,
    PreferenceStore,
    create_token,
    resolve_token,
)
from diskscope.errors import BookmarkError


def _home(tmp_path, name="test", with_library=True):
    home = tmp_path / "Users" / name
    home.mkdir(parents=True)
    if with_library:
        (home / "Library").mkdir()
    return home


def _broker(tmp_path, chooser=None, default_home=None):
    if default_home is None:
        default_home = tmp_path / "sandbox-home"
        default_home.mkdir(exist_ok=True)
    return AccessBroker(
        chooser=chooser,
        preferences=PreferenceStore(str(tmp_path / "prefs")),
        default_home=str(default_home),
    )


class TestTokens:
    def test_round_trip(self, tmp_path):
        grant = resolve_token(create_token(str(tmp_path)))
        assert grant.resolved_path == str(tmp_path)
        assert grant.stale is False

    def test_replaced_directory_is_stale(self, tmp_path):
        target = tmp_path / "target"
        target.mkdir()
        token = create_token(str(target))
        os.rename(target, tmp_path / "moved")
        target.mkdir()
        assert resolve_token(token).stale is True

    def test_missing_path(self, tmp_path):
        target = tmp_path / "gone"
        target.mkdir()
        token = create_token(str(target))
        target.rmdir()
        with pytest.raises(BookmarkError):
            resolve_token(token)

    def test_garbage(self):
        with pytest.raises(BookmarkError):
            resolve_token(b"\xff\x00 not a token")

    def test_create_for_missing_path(self, tmp_path):
        with pytest.raises(BookmarkError):
            create_token(str(tmp_path / "nope"))


class TestPreferenceStore:
    def test_missing_key(self, tmp_path):
        assert PreferenceStore(str(tmp_path)).get_bytes("x") is None

    def test_set_get(self, tmp_path):
        store = PreferenceStore(str(tmp_path / "nested"))
        store.set_bytes("x", b"\x00\x01blob")
        assert PreferenceStore(str(tmp_path / "nested")).get_bytes("x") == b"\x00\x01blob"

    def test_corrupt_file(self, tmp_path):
        (tmp_path / config.PREFERENCES_FILE).write_text("{oops", encoding="utf-8")
        assert PreferenceStore(str(tmp_path)).get_bytes("x") is None


class TestRestoreAccess:
    def test_no_token_falls_back_to_home(self, tmp_path):
        broker = _broker(tmp_path)
        assert broker.restore_access() is False
        assert broker.grant is None
        assert broker.current_root == str(tmp_path / "sandbox-home")

    def test_restores_after_restart(self, tmp_path):
        home = _home(tmp_path)
        first = _broker(tmp_path, chooser=lambda initial: str(home))
        assert first.request_access()
        first.release()

        second = _broker(tmp_path)
        assert second.restore_access() is True
        assert second.current_root == str(home)
        assert second.check_access() is True

    def test_stale_token_is_refreshed(self, tmp_path):
        home = _home(tmp_path)
        store = PreferenceStore(str(tmp_path / "prefs"))
        stale = json.dumps({"path": str(home), "dev": 0, "ino": 0}).encode()
        store.set_bytes(config.BOOKMARK_KEY, stale)

        broker = _broker(tmp_path)
        assert broker.restore_access() is True
        assert broker.current_root == str(home)

        refreshed = store.get_bytes(config.BOOKMARK_KEY)
        assert refreshed != stale
        assert resolve_token(refreshed).stale is False

    def test_unresolvable_token(self, tmp_path):
        home = _home(tmp_path)
        broker = _broker(tmp_path, chooser=lambda initial: str(home))
        broker.request_access()
        broker.release()
        shutil.rmtree(home)

        restored = _broker(tmp_path)
        assert restored.restore_access() is False
        assert restored.current_root == str(tmp_path / "sandbox-home")

    def test_corrupt_token(self, tmp_path):
        PreferenceStore(str(tmp_path / "prefs")).set_bytes(config.BOOKMARK_KEY, b"junk")
        broker = _broker(tmp_path)
        assert broker.restore_access() is False
        assert broker.grant is None


class TestCheckAccess:
    def test_without_grant(self, tmp_path):
        broker = _broker(tmp_path)
        assert broker.check_access() is False
        assert broker.root_readable is True
        assert broker.has_full_access is False

    def test_missing_root(self, tmp_path):
        broker = _broker(tmp_path, default_home=tmp_path / "missing")
        assert broker.check_access() is False
        assert broker.root_readable is False

    def test_full_access(self, tmp_path):
        home = _home(tmp_path)
        broker = _broker(tmp_path, default_home=home)
        assert broker.check_access() is True
        assert broker.has_full_access is True


class TestRequestAccess:
    def test_grant_scenario(self, tmp_path):
        home = _home(tmp_path)
        seen = []

        def chooser(initial):
            seen.append(initial)
            return str(home)

        broker = _broker(tmp_path, chooser=chooser)
        assert broker.check_access() is False
        assert broker.request_access("/Users") is True
        assert seen == ["/Users"]
        assert broker.check_access() is True
        assert broker.current_root == str(home)
        assert PreferenceStore(str(tmp_path / "prefs")).get_bytes(config.BOOKMARK_KEY) is not None

    def test_declined(self, tmp_path):
        broker = _broker(tmp_path, chooser=lambda initial: None)
        assert broker.request_access() is False
        assert broker.grant is None

    def test_no_chooser(self, tmp_path):
        assert _broker(tmp_path).request_access() is False

    def test_chosen_path_missing(self, tmp_path):
        broker = _broker(tmp_path, chooser=lambda initial: str(tmp_path / "nope"))
        assert broker.request_access() is False
        assert broker.grant is None

    def test_root_without_library(self, tmp_path):
        home = _home(tmp_path, with_library=False)
        broker = _broker(tmp_path, chooser=lambda initial: str(home))
        assert broker.request_access() is True
        assert broker.root_readable is True
        assert broker.has_full_access is False
        assert broker.current_root == str(home)

    def test_chooser_error_is_absorbed(self, tmp_path):
        def chooser(initial):
            raise EOFError()

        broker = _broker(tmp_path, chooser=chooser)
        assert broker.request_access() is False
        assert broker.grant is None
        assert PreferenceStore(str(tmp_path / "prefs")).get_bytes(config.BOOKMARK_KEY) is None


class TestRelease:
    def test_release_returns_to_default(self, tmp_path):
        home = _home(tmp_path)
        broker = _broker(tmp_path, chooser=lambda initial: str(home))
        broker.request_access()
        broker.release()
        assert broker.grant is None
        assert broker.current_root == str(tmp_path / "sandbox-home")

    def test_release_without_grant(self, tmp_path):
        _broker(tmp_path).release()
