import json
import logging
from pathlib import Path
from typing import Tuple

from sppmon.config import effective_settings
from sppmon.errors import SupervisorError
from sppmon.release.models import RuntimeDescriptor

log = logging.getLogger(__name__)


def load_active_descriptor(base_dir: Path) -> Tuple[RuntimeDescriptor, Path]:
    """
    Reads the runtime descriptor of the release `<base>/current` points at.

    Called on every supervisor invocation; nothing is cached between commands.

    :param base_dir: The deployment base on this host.
    :return: The descriptor and the resolved release directory.
    :raises SupervisorError: If there is no active release or its descriptor is unreadable.
    """
    current = Path(base_dir) / effective_settings.CURRENT_LINK_NAME
    if not current.exists():
        raise SupervisorError(f"No active release: '{current}' does not point to an installed release.")

    release_dir = current.resolve()
    path = release_dir / effective_settings.RELEASE_META_DIR / effective_settings.RUNTIME_FILE_NAME
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise SupervisorError(f"Release '{release_dir.name}' has no runtime descriptor at '{path}'.") from None
    except (json.JSONDecodeError, OSError) as e:
        raise SupervisorError(f"Runtime descriptor '{path}' is unreadable: {e}") from e

    try:
        descriptor = RuntimeDescriptor.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise SupervisorError(f"Runtime descriptor '{path}' is malformed: {e}") from e

    log.debug(f"Loaded runtime descriptor of {release_dir.name}: {descriptor.service_ids()}")
    return descriptor, release_dir
