"""Workspace context gathering and prompt rendering."""

from julesbridge.context.gatherer import (
    ContextFile,
    ContextProvider,
    GatheredContext,
    GitContext,
    WorkspaceContextGatherer,
    build_prompt,
    load_context_files,
    parse_github_url,
)

__all__ = [
    "ContextFile",
    "ContextProvider",
    "GatheredContext",
    "GitContext",
    "WorkspaceContextGatherer",
    "build_prompt",
    "load_context_files",
    "parse_github_url",
]
