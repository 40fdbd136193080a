"""SPPMon: builds, deploys, rolls back and supervises monitoring-agent releases."""

__version__ = "1.0.0"
