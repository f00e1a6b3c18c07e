"""GitHub integration for History Weaver.

Provides the REST client that replays history events against a repository.
"""

from .client import GitHubClient, build_commit_message, tag_name_for

__all__ = ["GitHubClient", "build_commit_message", "tag_name_for"]
