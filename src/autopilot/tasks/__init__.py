from autopilot.tasks.base import (
    MalformedTaskError,
    TaskBehavior,
    TaskContext,
    TaskResult,
)
from autopilot.tasks.bundler import BundleAddBehavior, ZeitwerkCheckBehavior
from autopilot.tasks.files import ReadFileBehavior, UpdateFileBehavior
from autopilot.tasks.npm import (
    NpmInstallBehavior,
    NpmInstallDevBehavior,
    TypeScriptCheckBehavior,
)

__all__ = [
    "BundleAddBehavior",
    "MalformedTaskError",
    "NpmInstallBehavior",
    "NpmInstallDevBehavior",
    "ReadFileBehavior",
    "TaskBehavior",
    "TaskContext",
    "TaskResult",
    "TypeScriptCheckBehavior",
    "UpdateFileBehavior",
    "ZeitwerkCheckBehavior",
]
