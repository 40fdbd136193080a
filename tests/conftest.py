import textwrap
from pathlib import Path
from datetime import datetime

import pytest

from sppmon.catalog import Catalog
from sppmon.release import ReleaseBuilder
from sppmon.deploy import DeploymentManager
from sppmon.deploy.operations import LocalExecutor
from sppmon.supervisor import ALL, EscalationPolicy, ServiceSupervisor

SERVICES_YML = """
services:
  A:
    binaries: [a]
    args: "--config ${SPPMON_CONFIG_DIR}/a.conf --app ${APP} --release ${RELEASE_ID}"
    requires: []
    fragments: [f1]
    description: Service A
  B:
    binaries: [b]
    requires: [A]
    fragments: [f2]
    description: Service B
  C:
    requires: [A]
    fragments: [f3]
    description: Config-only service with a missing template
  D:
    binaries: [missing-bin]
    fragments: [f1]
  Dup:
    requires: [A]
    fragments: [fdup]
  E:
    requires: [f2]
    fragments: []
  X:
    requires: [Y]
    fragments: []
  Y:
    requires: [X]
    fragments: []
  stubborn:
    binaries: [stubborn]
    fragments: []
  crash:
    binaries: [crash]
    fragments: []
"""

APPS_YML = """
apps:
  DEMO:
    defaults:
      services: [B]
"""

SCRIPTS = {
    "a": """\
        #!/bin/sh
        echo "a started with: $*"
        exec sleep 30
        """,
    "b": """\
        #!/bin/sh
        echo "b started"
        exec sleep 30
        """,
    "stubborn": """\
        #!/bin/sh
        trap '' TERM
        exec sleep 30
        """,
    "crash": """\
        #!/bin/sh
        echo "boom"
        exit 1
        """,
}

BUILD_TIME = datetime(2024, 1, 1, 12, 0, 0)


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def root_dir(tmp_path):
    """A complete orchestrator root: catalog, templates and service binaries."""
    root = tmp_path / "root"
    _write(root / "catalog" / "services.yml", SERVICES_YML)
    _write(root / "catalog" / "apps.yml", APPS_YML)

    templates = root / "catalog" / "templates"
    _write(templates / "f1" / "a.conf", "a = 1\n")
    _write(templates / "f1" / "sub" / "nested.conf", "nested = true\n")
    _write(templates / "f2" / "b.conf", "b = 1\n")
    _write(templates / "fdup" / "a.conf", "a = overridden\n")

    for name, body in SCRIPTS.items():
        script = _write(root / "bin" / name, textwrap.dedent(body))
        script.chmod(0o644)  # the builder must add the executable bits
    return root


@pytest.fixture
def catalog(root_dir):
    return Catalog.from_directory(root_dir / "catalog")


@pytest.fixture
def builder(root_dir, catalog):
    return ReleaseBuilder(catalog, binaries_dir=root_dir / "bin", dist_dir=root_dir / "dist", strict=False)


@pytest.fixture
def executor(tmp_path):
    return LocalExecutor(hosts_dir=tmp_path / "hosts", remote_base="/sppmon")


@pytest.fixture
def manager(executor):
    return DeploymentManager(executor)


@pytest.fixture
def build(builder):
    """Builds a release of the given services at a given second of BUILD_TIME's minute."""
    def _build(services, second=0, app="demo", env="prod"):
        return builder.build(services, app, env, built_at=BUILD_TIME.replace(second=second))
    return _build


@pytest.fixture
def host(manager, executor, build):
    """A simulated host with one active release of A and B."""
    result = build(["A", "B", "stubborn", "crash"])
    deployed = manager.deploy("host1", result.release_id, result.archive_path)
    assert deployed.ok
    return executor.base_dir("host1")


@pytest.fixture
def supervisor(host):
    policy = EscalationPolicy(graceful_timeout=0.5, kill_timeout=2.0, poll_interval=0.05)
    sup = ServiceSupervisor(host, policy=policy, start_grace_period=0.3)
    yield sup
    # Never leak processes between tests.
    try:
        sup.stop(ALL)
    except Exception:
        pass
