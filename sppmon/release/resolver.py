import logging
from typing import Iterable, List, Set

from sppmon.catalog import Catalog
from sppmon.errors import CatalogError

log = logging.getLogger(__name__)


def resolve_services(tokens: Iterable[str], catalog: Catalog) -> List[str]:
    """
    Expands requested tokens into an ordered, de-duplicated service list.

    Each token (service id or uniquely owned fragment id) is walked depth-first
    in input order, and a service is appended only after everything it requires.
    A service already seen, including one still on the current path, counts as
    satisfied: dependency cycles are absorbed and never reported.

    :param tokens: Requested service or fragment ids, in request order.
    :param catalog: The catalog answering existence, requires and fragment-owner queries.
    :return: Service ids in dependency-first order.
    :raises CatalogError: On an unknown or ambiguous token, or when nothing was requested.
    """
    ordered: List[str] = []
    seen: Set[str] = set()

    def visit(token: str) -> None:
        service_id = catalog.resolve_token(token)
        if service_id in seen:
            return
        seen.add(service_id)
        for required in catalog.requires(service_id):
            visit(required)
        ordered.append(service_id)

    requested = [t.strip() for t in tokens if t and t.strip()]
    for token in requested:
        visit(token)

    if not ordered:
        raise CatalogError("No services requested: the resolved service set is empty.")

    log.debug(f"Resolved {requested} to {ordered}")
    return ordered


def parse_service_list(raw: str) -> List[str]:
    """Splits a comma and/or whitespace separated service list."""
    return [part for part in raw.replace(",", " ").split() if part]
