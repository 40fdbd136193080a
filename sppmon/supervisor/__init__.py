"""
The Supervisor package.
Manages the lifecycle of the services of the active release on one host.

This package contains the central ServiceSupervisor class and its helper
modules, which together handle PID persistence, process creation and the
graceful-to-forced stop escalation.
"""
from .supervisor import ServiceSupervisor, ServiceStatus, ALL
from .shutdown import EscalationPolicy

__all__ = ['ServiceSupervisor', 'ServiceStatus', 'EscalationPolicy', 'ALL']
