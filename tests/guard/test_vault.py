"""Tests for MediaVault: single slot, single use, absolute expiry, sweep task."""

import asyncio

import pytest

from chatwarden.guard.vault import MediaVault


def make_vault(expiration=300.0, sweep_interval=60.0) -> MediaVault:
    return MediaVault(expiration=expiration, sweep_interval=sweep_interval)


def capture(vault: MediaVault, actor="u", data=b"P", now=0.0):
    return vault.capture(actor, media_kind="image", data=data, mime_type="image/jpeg", now=now)


class TestRevealAndSweep:
    def test_reveal_is_single_use(self):
        vault = make_vault()
        capture(vault, now=0)
        entry = vault.reveal("u", now=240)
        assert entry is not None and entry.data == b"P"
        assert vault.reveal("u", now=241) is None

    def test_sweep_removes_stale(self):
        vault = make_vault()
        capture(vault, now=0)
        assert vault.sweep(now=400) == 1
        assert vault.reveal("u", now=401) is None

    def test_sweep_keeps_fresh(self):
        vault = make_vault()
        capture(vault, actor="old", now=0)
        capture(vault, actor="new", now=200)
        assert vault.sweep(now=400) == 1
        assert vault.peek("new") is not None

    def test_expired_reveal_deletes(self):
        vault = make_vault()
        capture(vault, now=0)
        assert vault.reveal("u", now=301) is None
        assert len(vault) == 0

    def test_capture_overwrites(self):
        vault = make_vault()
        capture(vault, data=b"first", now=0)
        capture(vault, data=b"second", now=10)
        assert len(vault) == 1
        assert vault.reveal("u", now=20).data == b"second"

    def test_reveal_missing(self):
        assert make_vault().reveal("nobody", now=0) is None


class TestSweepTask:
    @pytest.mark.asyncio
    async def test_background_sweep_runs(self):
        vault = make_vault(expiration=0.0, sweep_interval=0.01)
        capture(vault, now=0)
        vault.start()
        try:
            await asyncio.sleep(0.05)
            assert len(vault) == 0
        finally:
            await vault.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels(self):
        vault = make_vault()
        vault.start()
        assert vault.running
        await vault.stop()
        assert not vault.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        vault = make_vault()
        vault.start()
        first = vault._sweep_task
        vault.start()
        assert vault._sweep_task is first
        await vault.stop()
