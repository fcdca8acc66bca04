from __future__ import annotations

from collections.abc import Mapping

from autopilot.templates.base import (
    ScaffoldError,
    ScaffoldStatus,
    TaskCatalog,
    UnknownWorkspaceKindError,
    WorkspaceTemplate,
    build_catalog,
    common_behaviors,
    merge_behaviors,
)
from autopilot.templates.rails import RailsTemplate
from autopilot.templates.vite_react_ts import ViteReactTsTemplate

TEMPLATES: Mapping[str, type[WorkspaceTemplate]] = {
    ViteReactTsTemplate.name: ViteReactTsTemplate,
    RailsTemplate.name: RailsTemplate,
}


def get_template(
    kind: str,
    templates: Mapping[str, type[WorkspaceTemplate]] = TEMPLATES,
) -> WorkspaceTemplate:
    template_cls = templates.get(kind)
    if template_cls is None:
        known = ", ".join(sorted(templates))
        raise UnknownWorkspaceKindError(f"Unknown workspace kind '{kind}'. Known kinds: {known}")
    return template_cls()


__all__ = [
    "TEMPLATES",
    "RailsTemplate",
    "ScaffoldError",
    "ScaffoldStatus",
    "TaskCatalog",
    "UnknownWorkspaceKindError",
    "ViteReactTsTemplate",
    "WorkspaceTemplate",
    "build_catalog",
    "common_behaviors",
    "get_template",
    "merge_behaviors",
]
