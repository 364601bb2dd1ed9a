"""Discord interaction parsing, routing and handlers."""

from .context import HandlerContext, LinkedProfile
from .models import Interaction
from .responses import MESSAGE_FLAG_EPHEMERAL, ResponseType
from .router import (
    CommandKind,
    ComponentKind,
    InteractionType,
    handle_interaction,
    resolve_command,
    resolve_component,
)

__all__ = [
    "HandlerContext",
    "LinkedProfile",
    "Interaction",
    "MESSAGE_FLAG_EPHEMERAL",
    "ResponseType",
    "CommandKind",
    "ComponentKind",
    "InteractionType",
    "handle_interaction",
    "resolve_command",
    "resolve_component",
]
