"""
The Release package.
Resolves requested services and assembles immutable release archives.
"""
from .resolver import resolve_services, parse_service_list
from .builder import ReleaseBuilder
from .models import BuildResult, Manifest, RuntimeDescriptor, RuntimeEntry, make_release_id

__all__ = [
    'resolve_services', 'parse_service_list', 'ReleaseBuilder',
    'BuildResult', 'Manifest', 'RuntimeDescriptor', 'RuntimeEntry', 'make_release_id',
]
