"""
The Catalog package.
Read-only access to service definitions, app defaults and fragment templates.
"""
from .provider import Catalog, ServiceDefinition

__all__ = ['Catalog', 'ServiceDefinition']
