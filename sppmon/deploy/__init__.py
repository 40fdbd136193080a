"""
The Deploy package.
Stages, installs and atomically activates releases on targets, selects
rollback releases and renders the release inventory.
"""
from .manager import DeploymentManager, DeployResult, DeployState, FleetResult
from .rollback import RollbackSelector, RollbackMode, ReleaseInfo
from .inventory import render_inventory, parse_inventory

__all__ = [
    'DeploymentManager', 'DeployResult', 'DeployState', 'FleetResult',
    'RollbackSelector', 'RollbackMode', 'ReleaseInfo', 'render_inventory', 'parse_inventory',
]
