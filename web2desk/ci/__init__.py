"""CI integration module.

This module handles:
- GitHub Actions REST access (contents, dispatch, runs, artifacts)
"""

from web2desk.ci.github import CIRequestError, GitHubClient, RunArtifact, WorkflowRun

__all__ = ["CIRequestError", "GitHubClient", "RunArtifact", "WorkflowRun"]
