"""Build orchestration module.

This module handles:
- Build records and their status state machine
- Build strategies (template repo, user repo, simulated, project)
- CI status reconciliation
- Archiving installers from CI bundles into blob storage
- Per-build change subscriptions
"""

from web2desk.builds.models import Artifact, Build

__all__ = ["Artifact", "Build"]

# Access submodules via web2desk.builds.service, web2desk.builds.archiver, etc.
