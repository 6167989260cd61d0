"""Core pieces of the hermetic provisioning engine."""

from .catalog import Category, Dependency, InputCatalog
from .closure import BuildClosure, ResolvedDependency, build_closure
from .config import EngineSettings, default_config_path
from .descriptor import Descriptor, load_descriptor
from .environment import EnvironmentView, Mode, materialize
from .errors import HermeticError
from .events import Event, EventBus
from .features import FeatureSet, resolve_features
from .paths import UserDirs
from .toolchain import ResolvedToolchain, ToolchainIndex, ToolchainResolver, ToolchainSpec
from .workspace import WorkspaceLayout, WorkspaceResolver
from .wrapper import Artifact, CompiledBinary, wrap

__all__ = [
    "Artifact",
    "BuildClosure",
    "Category",
    "CompiledBinary",
    "Dependency",
    "Descriptor",
    "EngineSettings",
    "EnvironmentView",
    "Event",
    "EventBus",
    "FeatureSet",
    "HermeticError",
    "InputCatalog",
    "Mode",
    "ResolvedDependency",
    "ResolvedToolchain",
    "ToolchainIndex",
    "ToolchainResolver",
    "ToolchainSpec",
    "UserDirs",
    "WorkspaceLayout",
    "WorkspaceResolver",
    "build_closure",
    "default_config_path",
    "load_descriptor",
    "materialize",
    "resolve_features",
    "wrap",
]
