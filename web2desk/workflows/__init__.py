"""CI workflow synthesis module.

This module handles:
- Workflow file naming per framework and OS
- Rendering GitHub Actions workflow YAML
"""

from web2desk.workflows.synth import synthesize_workflow, workflow_file_name

__all__ = ["synthesize_workflow", "workflow_file_name"]
