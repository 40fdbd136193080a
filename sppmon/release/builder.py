import os
import json
import stat
import shutil
import string
import logging
import tarfile
import tempfile
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from sppmon.catalog import Catalog
from sppmon.errors import BuildError
from sppmon.config import effective_settings
from sppmon.release.models import (
    BuildResult, Manifest, RuntimeDescriptor, RuntimeEntry, make_release_id, validate_name,
)

log = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | _EXEC_BITS)


def _normalize_member(info: tarfile.TarInfo) -> tarfile.TarInfo:
    """Strips builder-specific ownership from archive members."""
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


class ReleaseBuilder:
    """
    Assembles an immutable release archive from a resolved service set.

    The tree is built in a scratch directory and packaged under a temporary
    name; only a complete archive is ever renamed into the dist directory.
    """

    def __init__(self, catalog: Catalog, binaries_dir: Optional[Path] = None,
                 dist_dir: Optional[Path] = None, strict: Optional[bool] = None) -> None:
        self.catalog = catalog
        self.binaries_dir = Path(binaries_dir or effective_settings.BINARIES_SOURCE_DIR)
        self.dist_dir = Path(dist_dir or effective_settings.DIST_DIR)
        self.strict = effective_settings.STRICT_MODE if strict is None else strict
        self.warnings: List[str] = []

    def _violation(self, message: str) -> None:
        """Aborts in strict mode, records a warning otherwise."""
        if self.strict:
            raise BuildError(f"Strict mode: {message}")
        log.warning(message)
        self.warnings.append(message)

    #* --- Steps ---
    def collect_fragments(self, services: List[str]) -> List[str]:
        """Ordered union of the fragments declared by every service, first seen wins."""
        fragments: List[str] = []
        for service_id in services:
            for fragment in self.catalog.fragments(service_id):
                if fragment not in fragments:
                    fragments.append(fragment)
        return fragments

    def _copy_fragment(self, fragment: str, config_dir: Path) -> None:
        source = self.catalog.fragment_dir(fragment)
        if source is None:
            self._violation(f"missing template directory for fragment '{fragment}'.")
            return

        for src_path in sorted(source.rglob("*")):
            relative = src_path.relative_to(source)
            dest_path = config_dir / relative
            if src_path.is_dir():
                dest_path.mkdir(parents=True, exist_ok=True)
                continue
            if dest_path.exists():
                self._violation(f"fragment '{fragment}' overwrites config file '{relative.as_posix()}'.")
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src_path, dest_path)
        log.debug(f"Copied fragment '{fragment}' from '{source}'.")

    def _copy_binaries(self, service_id: str, binaries_dir: Path) -> bool:
        """
        Copies the binaries of one service.

        :return: True if the service is launchable (its primary binary was packaged).
        """
        binaries = self.catalog.binaries(service_id)
        if not binaries:
            return False

        launchable = True
        for index, binary in enumerate(binaries):
            src_path = self.binaries_dir / binary
            if not src_path.is_file():
                self._violation(f"missing binary '{binary}' for service '{service_id}' (expected: {src_path}).")
                if index == 0:
                    launchable = False
                continue
            dest_path = binaries_dir / binary
            shutil.copy2(src_path, dest_path)
            _make_executable(dest_path)

        if not launchable:
            log.warning(f"Service '{service_id}' is config-only in this release.")
        return launchable

    def _render_args(self, service_id: str, app: str, environment: str, release_id: str) -> str:
        # Runtime placeholders (${SPPMON_*}) are left untouched for the supervisor.
        template = string.Template(self.catalog.args(service_id))
        return template.safe_substitute(APP=app, ENV=environment, RELEASE_ID=release_id, SERVICE=service_id)

    def _write_scaffolding(self, pkg_dir: Path, manifest: Manifest, descriptor: RuntimeDescriptor) -> None:
        scripts_dir = pkg_dir / effective_settings.RELEASE_SCRIPTS_DIR
        scripts_dir.mkdir(parents=True, exist_ok=True)

        control = scripts_dir / "control"
        control.write_text(effective_settings.CONTROL_ENTRYPOINT_TEMPLATE.format(release_id=manifest.release_id))
        _make_executable(control)

        environment = scripts_dir / "environment.sh"
        environment.write_text(effective_settings.ENVIRONMENT_TEMPLATE.format(
            release_id=manifest.release_id,
            app=manifest.app,
            env=manifest.environment,
            built_at=manifest.built_at,
            binaries_dir=effective_settings.RELEASE_BINARIES_DIR,
            config_dir=effective_settings.RELEASE_CONFIG_DIR,
            volumes_dir=effective_settings.VOLUMES_DIR_NAME,
            runtime_services=" ".join(descriptor.service_ids()),
        ))
        _make_executable(environment)

    def _write_meta(self, pkg_dir: Path, manifest: Manifest, descriptor: RuntimeDescriptor) -> None:
        meta_dir = pkg_dir / effective_settings.RELEASE_META_DIR
        meta_dir.mkdir(parents=True, exist_ok=True)
        (meta_dir / effective_settings.MANIFEST_FILE_NAME).write_text(json.dumps(manifest.to_dict(), indent=4))
        (meta_dir / effective_settings.RUNTIME_FILE_NAME).write_text(json.dumps(descriptor.to_dict(), indent=4))

        files_list = meta_dir / effective_settings.FILES_LIST_NAME
        files = {p.relative_to(pkg_dir).as_posix() for p in pkg_dir.rglob("*") if p.is_file()}
        files.add(files_list.relative_to(pkg_dir).as_posix())
        files_list.write_text("".join(f"{name}\n" for name in sorted(files)))

    def _package(self, work_dir: Path, release_id: str) -> Path:
        self.dist_dir.mkdir(parents=True, exist_ok=True)
        archive_path = self.dist_dir / f"{release_id}.tar.gz"
        temp_path = self.dist_dir / f".{release_id}.tar.gz.tmp"
        try:
            with tarfile.open(temp_path, "w:gz") as tar:
                tar.add(work_dir / release_id, arcname=release_id, filter=_normalize_member)
            os.replace(temp_path, archive_path)
        except (OSError, tarfile.TarError) as e:
            raise BuildError(f"Release {release_id}: archive assembly failed: {e}") from e
        finally:
            temp_path.unlink(missing_ok=True)
        return archive_path

    #* --- Public API ---
    def build(self, services: List[str], app: str, environment: str,
              built_at: Optional[datetime] = None) -> BuildResult:
        """
        Builds one release archive.

        :param services: The resolved, dependency-ordered service ids.
        :param app: The app name.
        :param environment: The environment name.
        :param built_at: Build time; defaults to now.
        :return: The BuildResult describing the published archive.
        :raises BuildError: On any strict-mode violation or packaging failure. No archive is published then.
        """
        validate_name("app", app)
        validate_name("environment", environment)
        if not services:
            raise BuildError("Cannot build a release without services.")

        built_at = built_at or datetime.now()
        release_id = make_release_id(app, environment, built_at)
        self.warnings = []
        log.info(f"Building release: {release_id} (strict={self.strict})")

        with tempfile.TemporaryDirectory(prefix="sppmon_build_") as tmp:
            work_dir = Path(tmp)
            pkg_dir = work_dir / release_id
            config_dir = pkg_dir / effective_settings.RELEASE_CONFIG_DIR
            binaries_dir = pkg_dir / effective_settings.RELEASE_BINARIES_DIR
            config_dir.mkdir(parents=True)
            binaries_dir.mkdir(parents=True)

            fragments = self.collect_fragments(services)
            for fragment in fragments:
                self._copy_fragment(fragment, config_dir)

            entries: List[RuntimeEntry] = []
            for service_id in services:
                if not self._copy_binaries(service_id, binaries_dir):
                    continue
                entries.append(RuntimeEntry(
                    id=service_id,
                    binary=self.catalog.binaries(service_id)[0],
                    args=self._render_args(service_id, app, environment, release_id),
                    description=self.catalog.description(service_id),
                ))

            descriptor = RuntimeDescriptor(release_id=release_id, services=entries)
            manifest = Manifest(
                release_id=release_id,
                app=app,
                environment=environment,
                built_at=built_at.isoformat(timespec="seconds"),
                services=list(services),
                fragments=fragments,
            )
            self._write_scaffolding(pkg_dir, manifest, descriptor)
            self._write_meta(pkg_dir, manifest, descriptor)
            archive_path = self._package(work_dir, release_id)

        log.info(f"Release packaged: {archive_path} ({len(entries)} launchable of {len(services)} services)")
        return BuildResult(
            release_id=release_id,
            archive_path=archive_path,
            manifest=manifest,
            descriptor=descriptor,
            warnings=list(self.warnings),
        )
