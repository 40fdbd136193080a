"""
This module contains the configuration defaults for SPPMon.
It defines paths, deployment and supervision settings, and the scaffolding
templates shipped inside every release.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Core Paths ---
PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
ROOT_DIR = pathlib.Path(os.getenv("SPPMON_ROOT", pathlib.Path.cwd())).resolve()  # Orchestrator root
CATALOG_DIR = ROOT_DIR / "catalog"
TEMPLATES_DIR = CATALOG_DIR / "templates"
BINARIES_SOURCE_DIR = ROOT_DIR / "bin"
TOOLS_DIR = ROOT_DIR / "tools"
DIST_DIR = ROOT_DIR / "dist"
HOSTS_DIR = ROOT_DIR / "hosts"
OVERRIDES_JSON_PATH = ROOT_DIR / "overrides.json"

#* --- Target Layout ---
# Base directory of a deployment on a target host. The supervisor runs against
# SPPMON_BASE_DIR on the host itself.
REMOTE_BASE = os.getenv("SPPMON_REMOTE_BASE", "/sppmon")
BASE_DIR = pathlib.Path(os.getenv("SPPMON_BASE_DIR", "/opt/sppmon"))
RELEASES_DIR_NAME = "releases"
CURRENT_LINK_NAME = "current"
VOLUMES_DIR_NAME = "volumes"
STAGING_PREFIX = ".staging_"
INVENTORY_FILE_NAME = "version_present.prom"

#* --- Release Layout ---
RELEASE_BINARIES_DIR = "binaries"
RELEASE_CONFIG_DIR = "config"
RELEASE_META_DIR = "meta"
RELEASE_SCRIPTS_DIR = "bin"
MANIFEST_FILE_NAME = "manifest.json"
RUNTIME_FILE_NAME = "runtime.json"
FILES_LIST_NAME = "files.txt"
RELEASE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
NAME_PATTERN = r"^[A-Za-z0-9_-]+$"

#* --- Build Settings ---
STRICT_MODE = os.getenv("SPPMON_STRICT", "False").lower() in ('true', '1', 't')

#* --- Deployment Settings ---
DEPLOY_WORKERS = int(os.getenv("SPPMON_DEPLOY_WORKERS", "8"))
DOWNLOAD_TIMEOUT = 30  # seconds
SSH_USER = os.getenv("SPPMON_SSH_USER", "")
SSH_PORT = int(os.getenv("SPPMON_SSH_PORT", "22"))
SSH_OPTIONS = os.getenv("SPPMON_SSH_OPTIONS", "-o StrictHostKeyChecking=no")
SSH_TIMEOUT = 300  # seconds per remote script

#* --- Supervisor Settings ---
START_GRACE_PERIOD = 0.2     # seconds before verifying a fresh spawn
GRACEFUL_STOP_TIMEOUT = 5    # seconds before force-killing
FORCED_KILL_TIMEOUT = 2      # seconds to wait after SIGKILL
STOP_POLL_INTERVAL = 0.1     # seconds
DEFAULT_TAIL_LINES = 200
LOG_FOLLOW_INTERVAL = 0.2    # seconds
PROCESS_TITLE = "SPPMon - Control"

#* --- Application variables ---
VERBOSE_LOGGING = False
LOG_FILE_PATH = os.getenv("SPPMON_LOG_FILE") or None

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "STRICT_MODE", "DEPLOY_WORKERS",
    "START_GRACE_PERIOD", "GRACEFUL_STOP_TIMEOUT", "FORCED_KILL_TIMEOUT", "STOP_POLL_INTERVAL",
    "DEFAULT_TAIL_LINES", "REMOTE_BASE", "BASE_DIR",
}

#* --- Release Scaffolding Templates ---
CONTROL_ENTRYPOINT_TEMPLATE = """#!/bin/sh
# This file is auto-generated for release {release_id}. Do not edit directly.
# Manages the services of the release currently pointed to by <base>/current.
SPPMON_RELEASE_DIR="$(cd -P "$(dirname "$0")/.." && pwd)"
SPPMON_BASE_DIR="$(cd "$SPPMON_RELEASE_DIR/../.." && pwd)"
export SPPMON_BASE_DIR
exec "${{SPPMON_PYTHON:-python3}}" -m sppmon.main control "$@"
"""

ENVIRONMENT_TEMPLATE = """#!/usr/bin/env bash
# This file is auto-generated for release {release_id}. Do not edit directly.
# app={app} env={env} built_at={built_at}

export SPPMON_RELEASE_DIR="$(cd -P "$(dirname "${{BASH_SOURCE[0]}}")/.." && pwd)"
export SPPMON_BASE_DIR="$(cd "$SPPMON_RELEASE_DIR/../.." && pwd)"

export SPPMON_BIN_DIR="$SPPMON_RELEASE_DIR/{binaries_dir}"
export SPPMON_CONFIG_DIR="$SPPMON_RELEASE_DIR/{config_dir}"
export SPPMON_VOLUMES_DIR="$SPPMON_BASE_DIR/{volumes_dir}"
export SPPMON_DATA_DIR="$SPPMON_VOLUMES_DIR/data"
export SPPMON_LOG_DIR="$SPPMON_VOLUMES_DIR/logs"
export SPPMON_RUN_DIR="$SPPMON_VOLUMES_DIR/run"

export SPPMON_RUNTIME_SERVICES="{runtime_services}"
"""

#* --- Inventory ---
INVENTORY_METRIC_NAME = "sppmon_release"
INVENTORY_METRIC_HELP = 'Release inventory (1 = present on disk). Label current="true" marks the active release.'
