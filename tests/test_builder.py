import os
import json
import tarfile

import pytest

from sppmon.errors import BuildError
from sppmon.release import ReleaseBuilder, make_release_id
from tests.conftest import BUILD_TIME


def _members(archive_path):
    with tarfile.open(archive_path, "r:gz") as tar:
        return {m.name: m for m in tar.getmembers()}


def _read(archive_path, name):
    with tarfile.open(archive_path, "r:gz") as tar:
        return tar.extractfile(name).read().decode()


def test_release_id_is_sortable():
    older = make_release_id("demo", "prod", BUILD_TIME.replace(month=9))
    newer = make_release_id("demo", "prod", BUILD_TIME.replace(month=10))
    assert older == "demo_prod_20240901_120000"
    assert newer > older


def test_example_release_contents(build):
    result = build(["A", "B"])
    rid = result.release_id
    members = _members(result.archive_path)

    assert {name.split("/")[0] for name in members} == {rid}
    assert f"{rid}/config/a.conf" in members
    assert f"{rid}/config/sub/nested.conf" in members
    assert f"{rid}/config/b.conf" in members
    assert f"{rid}/binaries/a" in members
    assert members[f"{rid}/binaries/a"].mode & 0o111
    assert members[f"{rid}/binaries/a"].uid == 0
    assert f"{rid}/bin/control" in members
    assert f"{rid}/bin/environment.sh" in members

    descriptor = json.loads(_read(result.archive_path, f"{rid}/meta/runtime.json"))
    assert [s["id"] for s in descriptor["services"]] == ["A", "B"]

    manifest = json.loads(_read(result.archive_path, f"{rid}/meta/manifest.json"))
    assert manifest["release_id"] == rid
    assert manifest["app"] == "demo"
    assert manifest["environment"] == "prod"
    assert manifest["services"] == ["A", "B"]
    assert manifest["fragments"] == ["f1", "f2"]


def test_files_list_is_sorted_and_complete(build):
    result = build(["A", "B"])
    rid = result.release_id
    listed = _read(result.archive_path, f"{rid}/meta/files.txt").splitlines()
    packaged = sorted(n[len(rid) + 1:] for n, m in _members(result.archive_path).items() if m.isfile())
    assert listed == packaged


def test_build_time_placeholders_resolved_runtime_ones_kept(build):
    result = build(["A"])
    args = result.descriptor.get("A").args
    assert "--app demo" in args
    assert f"--release {result.release_id}" in args
    assert "${SPPMON_CONFIG_DIR}/a.conf" in args


def test_strict_missing_fragment_aborts_without_archive(builder, root_dir):
    builder.strict = True
    with pytest.raises(BuildError, match="f3"):
        builder.build(["A", "C"], "demo", "prod", built_at=BUILD_TIME)
    assert not list((root_dir / "dist").glob("*"))


def test_lenient_missing_fragment_warns_and_omits(build):
    result = build(["A", "C"])
    assert any("f3" in w for w in result.warnings)
    assert result.archive_path.is_file()
    # C has no binaries: config-only, absent from the descriptor
    assert result.descriptor.service_ids() == ["A"]
    assert result.manifest.services == ["A", "C"]


def test_missing_binary_strict_and_lenient(builder, root_dir):
    builder.strict = True
    with pytest.raises(BuildError, match="missing-bin"):
        builder.build(["D"], "demo", "prod", built_at=BUILD_TIME)

    builder.strict = False
    result = builder.build(["D"], "demo", "prod", built_at=BUILD_TIME)
    assert result.descriptor.service_ids() == []
    assert any("missing-bin" in w for w in result.warnings)


def test_fragment_collision(builder):
    builder.strict = True
    with pytest.raises(BuildError, match="a.conf"):
        builder.build(["A", "Dup"], "demo", "prod", built_at=BUILD_TIME)

    builder.strict = False
    result = builder.build(["A", "Dup"], "demo", "prod", built_at=BUILD_TIME)
    rid = result.release_id
    assert _read(result.archive_path, f"{rid}/config/a.conf") == "a = overridden\n"
    assert any("overwrites" in w for w in result.warnings)


def test_invalid_names_rejected(builder):
    with pytest.raises(BuildError, match="app"):
        builder.build(["A"], "bad app", "prod", built_at=BUILD_TIME)
    with pytest.raises(BuildError, match="environment"):
        builder.build(["A"], "demo", "prod/1", built_at=BUILD_TIME)


def test_no_temporary_archive_left(build, root_dir):
    build(["A"])
    names = os.listdir(root_dir / "dist")
    assert names == [f"{make_release_id('demo', 'prod', BUILD_TIME)}.tar.gz"]


def test_scaffolding_is_rendered(build):
    result = build(["A", "B"])
    rid = result.release_id
    control = _read(result.archive_path, f"{rid}/bin/control")
    environment = _read(result.archive_path, f"{rid}/bin/environment.sh")
    assert rid in control
    assert "sppmon.main control" in control
    assert 'SPPMON_RUNTIME_SERVICES="A B"' in environment


def test_builder_with_custom_dist(catalog, root_dir, tmp_path):
    builder = ReleaseBuilder(catalog, binaries_dir=root_dir / "bin", dist_dir=tmp_path / "out", strict=True)
    result = builder.build(["B"], "demo", "staging", built_at=BUILD_TIME)
    assert result.archive_path.parent == tmp_path / "out"
    assert result.warnings == []
