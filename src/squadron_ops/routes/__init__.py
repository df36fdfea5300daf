"""HTTP routers for the ops console."""

from .debriefs import create_debrief_router
from .permissions import create_permission_router
from .rules import create_rule_router

__all__ = ["create_debrief_router", "create_permission_router", "create_rule_router"]
