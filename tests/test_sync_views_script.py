"""Tests for the sync-views cron script."""

import json

import pytest

from tests.conftest import STORY, FakeCounterStore
from view_sync.scripts import sync_views
from view_sync.services.view_buffer import InMemoryViewBuffer
from view_sync.services.view_sync import SyncCoordinator


@pytest.fixture
def wired(mocker):
    buffer = InMemoryViewBuffer({STORY: {"s1": 2}})
    store = FakeCounterStore({(STORY, "s1"): 1})
    mocker.patch.object(
        sync_views, "get_sync_coordinator", return_value=SyncCoordinator(buffer, store)
    )
    mocker.patch.object(sync_views, "configure_logging")
    return buffer, store


def test_main_runs_one_cycle_and_prints_summary(wired, capsys) -> None:
    _, store = wired

    exit_code = sync_views.main([])

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["trigger"] == "scheduled"
    assert summary["story_views_added"] == 2
    assert store.counts[(STORY, "s1")] == 3


def test_main_manual_flag(wired, capsys) -> None:
    assert sync_views.main(["--manual"]) == 0
    assert json.loads(capsys.readouterr().out)["trigger"] == "manual"


def test_main_exit_code_reflects_failed_run(wired, mocker, capsys) -> None:
    coordinator = sync_views.get_sync_coordinator()
    mocker.patch.object(coordinator.syncers[0], "sync", side_effect=RuntimeError("boom"))

    assert sync_views.main([]) == 1
    assert json.loads(capsys.readouterr().out)["success"] is False


def test_main_creates_tables_on_request(wired, mocker, capsys) -> None:
    create_tables = mocker.patch.object(sync_views, "create_tables")

    assert sync_views.main(["--create-tables"]) == 0
    create_tables.assert_called_once_with()


def test_main_leaves_schema_alone_by_default(wired, mocker, capsys) -> None:
    create_tables = mocker.patch.object(sync_views, "create_tables")

    sync_views.main([])

    create_tables.assert_not_called()
