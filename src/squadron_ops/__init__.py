"""Squadron ops console: scoped permissions and mission debrief access."""

from .main import AppDependencies, create_app
from .settings import ConsoleSettings

__all__ = ["AppDependencies", "ConsoleSettings", "create_app"]
