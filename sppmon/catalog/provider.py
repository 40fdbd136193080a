import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sppmon.errors import CatalogError

log = logging.getLogger(__name__)

SERVICES_FILE = "services.yml"
APPS_FILE = "apps.yml"


@dataclass(frozen=True)
class ServiceDefinition:
    """A read-only service entry of the catalog. The first binary is the primary one."""
    id: str
    binaries: List[str] = field(default_factory=list)
    args: str = ""
    requires: List[str] = field(default_factory=list)
    fragments: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def primary_binary(self) -> Optional[str]:
        return self.binaries[0] if self.binaries else None


def _as_list(value: Any, service_id: str, key: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        # "a,b c" and "a" are both accepted, as in the apps defaults
        return [part for part in value.replace(",", " ").split() if part]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise CatalogError(f"Service '{service_id}': '{key}' must be a list or a string, got {type(value).__name__}.")


def _parse_service(service_id: str, raw: Any) -> ServiceDefinition:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise CatalogError(f"Service '{service_id}': definition must be a mapping.")

    # A service without an explicit fragment list contributes the fragment named like itself.
    fragments = _as_list(raw["fragments"], service_id, "fragments") if "fragments" in raw else [service_id]
    args = raw.get("args") or ""
    if isinstance(args, list):
        args = " ".join(str(a) for a in args)

    return ServiceDefinition(
        id=service_id,
        binaries=_as_list(raw.get("binaries"), service_id, "binaries"),
        args=str(args),
        requires=_as_list(raw.get("requires"), service_id, "requires"),
        fragments=fragments,
        description=str(raw.get("description") or ""),
    )


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CatalogError(f"Malformed catalog file '{path}': {e}") from e
    except OSError as e:
        raise CatalogError(f"Cannot read catalog file '{path}': {e}") from e
    if not isinstance(data, dict):
        raise CatalogError(f"Catalog file '{path}' must contain a mapping at its top level.")
    return data


class Catalog:
    """
    Read-only provider of service definitions and app defaults.

    The catalog answers the queries needed by the resolver and the release
    builder. It never mutates its definitions after construction.
    """

    def __init__(self, services: Dict[str, Any], apps: Optional[Dict[str, Any]] = None,
                 templates_dir: Optional[Path] = None) -> None:
        """
        :param services: Mapping of service id to its raw definition (binaries, args, requires, fragments, description).
        :param apps: Mapping of app name to its raw definition (`defaults.services`).
        :param templates_dir: Directory holding one sub-directory per fragment.
        """
        self._services: Dict[str, ServiceDefinition] = {
            str(sid): _parse_service(str(sid), raw) for sid, raw in (services or {}).items()
        }
        self._apps: Dict[str, Any] = dict(apps or {})
        self.templates_dir = Path(templates_dir) if templates_dir else None

        self._fragment_owners: Dict[str, List[str]] = {}
        for definition in self._services.values():
            for fragment in definition.fragments:
                owners = self._fragment_owners.setdefault(fragment, [])
                if definition.id not in owners:
                    owners.append(definition.id)

    @classmethod
    def from_directory(cls, path: Path) -> "Catalog":
        """
        Loads `services.yml` and `apps.yml` from a catalog directory.

        :param path: The catalog directory. Fragment templates live in its `templates/` sub-directory.
        :return: A new Catalog.
        """
        path = Path(path)
        services_path = path / SERVICES_FILE
        if not services_path.is_file():
            raise CatalogError(f"Catalog file not found: {services_path}")

        services = _load_yaml(services_path).get("services") or {}
        if not isinstance(services, dict):
            raise CatalogError(f"'{services_path}': 'services' must be a mapping of service ids.")

        apps: Dict[str, Any] = {}
        apps_path = path / APPS_FILE
        if apps_path.is_file():
            apps = _load_yaml(apps_path).get("apps") or {}
            if not isinstance(apps, dict):
                raise CatalogError(f"'{apps_path}': 'apps' must be a mapping of app names.")

        log.debug(f"Loaded catalog from '{path}': {len(services)} services, {len(apps)} apps.")
        return cls(services, apps, path / "templates")

    #* --- Service queries ---
    def has_service(self, service_id: str) -> bool:
        return service_id in self._services

    def service(self, service_id: str) -> ServiceDefinition:
        try:
            return self._services[service_id]
        except KeyError:
            raise CatalogError(f"Unknown service '{service_id}': not declared in the catalog.") from None

    def service_ids(self) -> List[str]:
        return list(self._services)

    def requires(self, service_id: str) -> List[str]:
        return list(self.service(service_id).requires)

    def fragments(self, service_id: str) -> List[str]:
        return list(self.service(service_id).fragments)

    def binaries(self, service_id: str) -> List[str]:
        return list(self.service(service_id).binaries)

    def args(self, service_id: str) -> str:
        return self.service(service_id).args

    def description(self, service_id: str) -> str:
        return self.service(service_id).description

    def resolve_token(self, token: str) -> str:
        """
        Resolves a requested token to a concrete service id.

        A token is either a service id or a fragment id owned by exactly one service.

        :param token: The requested service or fragment id.
        :return: The concrete service id.
        :raises CatalogError: If the token is unknown or names a fragment shared by several services.
        """
        if token in self._services:
            return token
        owners = self._fragment_owners.get(token, [])
        if len(owners) == 1:
            return owners[0]
        if not owners:
            raise CatalogError(f"Unknown service '{token}': no service or fragment with this id.")
        raise CatalogError(f"Ambiguous reference '{token}': fragment is declared by {', '.join(owners)}.")

    #* --- App and fragment queries ---
    def default_services(self, app: str) -> List[str]:
        """
        Returns `apps.<APP>.defaults.services`, trying the app name as given,
        then upper-cased, then lower-cased.
        """
        for key in (app, app.upper(), app.lower()):
            entry = self._apps.get(key)
            if not isinstance(entry, dict):
                continue
            defaults = entry.get("defaults") or {}
            services = _as_list(defaults.get("services"), key, "defaults.services") if isinstance(defaults, dict) else []
            if services:
                return services
        raise CatalogError(f"No default services found for app '{app}' (expected: apps.<APP>.defaults.services).")

    def fragment_dir(self, fragment: str) -> Optional[Path]:
        """Returns the template directory of a fragment, or None if it does not exist."""
        if self.templates_dir is None:
            return None
        candidate = self.templates_dir / fragment
        return candidate if candidate.is_dir() else None
