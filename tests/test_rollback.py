import pytest

from sppmon.deploy import DeployState, ReleaseInfo, RollbackMode, RollbackSelector, parse_inventory
from sppmon.errors import NoPreviousReleaseError, NoReleasesError, ReleaseNotFoundError


@pytest.fixture
def selector(manager):
    return RollbackSelector(manager)


@pytest.fixture
def two_releases(manager, build):
    older = build(["A"], second=1)
    newer = build(["A"], second=2)
    manager.deploy("host1", older.release_id, older.archive_path)
    manager.deploy("host1", newer.release_id, newer.archive_path)
    return older.release_id, newer.release_id


def test_previous_with_single_release_fails(selector, manager, build):
    only = build(["A"])
    manager.deploy("host1", only.release_id, only.archive_path)
    with pytest.raises(NoPreviousReleaseError):
        selector.select("host1", RollbackMode.PREVIOUS)


def test_previous_selects_older(selector, two_releases):
    older, _ = two_releases
    assert selector.select("host1", RollbackMode.PREVIOUS) == older


def test_previous_after_rollback_selects_newest_non_current(selector, manager, two_releases):
    older, newer = two_releases
    manager.activate("host1", older)
    assert selector.select("host1", RollbackMode.PREVIOUS) == newer


def test_latest(selector, two_releases):
    _, newer = two_releases
    assert selector.select("host1", RollbackMode.LATEST) == newer


def test_latest_without_releases(selector):
    with pytest.raises(NoReleasesError):
        selector.select("host1", RollbackMode.LATEST)


def test_explicit(selector, two_releases):
    older, _ = two_releases
    assert selector.select("host1", RollbackMode.EXPLICIT, older) == older
    with pytest.raises(ReleaseNotFoundError, match="demo_prod_19990101_000000"):
        selector.select("host1", RollbackMode.EXPLICIT, "demo_prod_19990101_000000")


def test_list_flags_current(selector, two_releases):
    older, newer = two_releases
    assert selector.list("host1") == [ReleaseInfo(newer, True), ReleaseInfo(older, False)]


def test_list_ignores_staging_and_files(selector, executor, two_releases):
    releases = executor.base_dir("host1") / "releases"
    (releases / ".staging_demo_prod_20300101_000000").mkdir()
    assert [info.release_id for info in selector.list("host1")] == list(reversed(two_releases))


def test_rollback_swaps_pointer_and_refreshes_inventory(selector, manager, executor, two_releases):
    older, newer = two_releases
    result = selector.rollback("host1", RollbackMode.PREVIOUS)

    assert result.ok
    assert result.release_id == older
    assert manager.current_release("host1") == older
    inventory = (executor.base_dir("host1") / "releases" / "version_present.prom").read_text()
    assert parse_inventory(inventory) == {older: True, newer: False}


def test_rollback_failure_is_reported(selector):
    result = selector.rollback("host1", RollbackMode.PREVIOUS)
    assert result.state is DeployState.FAILED
    assert "no previous release" in result.error
