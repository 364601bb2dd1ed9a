"""Classify verified interactions and dispatch them to handlers."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Mapping

import structlog

from discord_task_bridge.interactions import commands, components
from discord_task_bridge.interactions.context import HandlerContext, LinkedProfile, Reply, handler_boundary
from discord_task_bridge.interactions.models import Interaction
from discord_task_bridge.interactions.responses import message_reply, pong, unknown_command_reply
from discord_task_bridge.repository import find_profile_by_discord_id
from discord_task_bridge.roles import ROLE_CUSTOM_ID_PREFIX


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3


class CommandKind(Enum):
    ADD_TASK = "addtask"
    LIST_TASKS = "listtasks"
    MY_TASKS = "mytasks"
    COMPLETE_TASK = "completetask"
    LINK_ACCOUNT = "linkaccount"
    SETUP_WELCOME = "setupwelcome"
    UNKNOWN = None


class ComponentKind(Enum):
    ROLE_SELECT = ROLE_CUSTOM_ID_PREFIX
    COMPLETE_TASK = commands.COMPLETE_TASK_CUSTOM_ID_PREFIX
    UNKNOWN = None


CommandHandler = Callable[[Interaction, HandlerContext], Reply]
LinkedComponentHandler = Callable[[Interaction, HandlerContext, LinkedProfile], Reply]

COMMAND_HANDLERS: Dict[CommandKind, CommandHandler] = {
    CommandKind.ADD_TASK: commands.handle_add_task,
    CommandKind.LIST_TASKS: commands.handle_list_tasks,
    CommandKind.MY_TASKS: commands.handle_my_tasks,
    CommandKind.COMPLETE_TASK: commands.handle_complete_task,
    CommandKind.LINK_ACCOUNT: commands.handle_link_account,
    CommandKind.SETUP_WELCOME: commands.handle_setup_welcome,
}

# Component kinds that only make sense for a linked profile.
LINKED_COMPONENT_HANDLERS: Dict[ComponentKind, LinkedComponentHandler] = {
    ComponentKind.COMPLETE_TASK: components.handle_complete_task_button,
}


def _ensure_exhaustive() -> None:
    missing_commands = set(CommandKind) - {CommandKind.UNKNOWN} - set(COMMAND_HANDLERS)
    routed_components = set(LINKED_COMPONENT_HANDLERS) | {ComponentKind.ROLE_SELECT, ComponentKind.UNKNOWN}
    missing_components = set(ComponentKind) - routed_components
    if missing_commands or missing_components:
        raise RuntimeError(
            f"Unrouted interaction kinds: {sorted(kind.name for kind in missing_commands | missing_components)}"
        )


_ensure_exhaustive()


def resolve_command(name: str | None) -> CommandKind:
    """Map a slash command name to its kind by exact match."""

    for kind in CommandKind:
        if kind is not CommandKind.UNKNOWN and kind.value == name:
            return kind
    return CommandKind.UNKNOWN


def resolve_component(custom_id: str | None) -> ComponentKind:
    """Map a component custom id to its kind by reserved prefix."""

    if not custom_id:
        return ComponentKind.UNKNOWN
    for kind in ComponentKind:
        if kind is not ComponentKind.UNKNOWN and custom_id.startswith(kind.value):
            return kind
    return ComponentKind.UNKNOWN


def route_command(interaction: Interaction, context: HandlerContext) -> Reply:
    kind = resolve_command(interaction.command_name)
    structlog.get_logger().info("command_received", command=interaction.command_name, kind=kind.name)
    if kind is CommandKind.UNKNOWN:
        return unknown_command_reply()
    return COMMAND_HANDLERS[kind](interaction, context)


@handler_boundary("component", ephemeral=True)
def route_component(interaction: Interaction, context: HandlerContext) -> Reply:
    custom_id = interaction.custom_id
    discord_user_id = interaction.user_id
    if not discord_user_id or not custom_id:
        return message_reply("❌ Error processing button interaction.", ephemeral=True)

    kind = resolve_component(custom_id)
    structlog.get_logger().info("component_received", kind=kind.name)
    if kind is ComponentKind.ROLE_SELECT:
        return components.handle_role_selection(interaction, context)

    with context.session_scope() as session:
        profile = find_profile_by_discord_id(session, discord_user_id)
        linked = LinkedProfile(id=profile.id, full_name=profile.full_name) if profile is not None else None

    if linked is None:
        return message_reply(
            "❌ Your Discord account is not linked. Use `/linkaccount` first.",
            ephemeral=True,
        )

    handler = LINKED_COMPONENT_HANDLERS.get(kind)
    if handler is None:
        return message_reply("❌ Unknown button action.", ephemeral=True)
    return handler(interaction, context, linked)


def handle_interaction(payload: Mapping[str, Any], context: HandlerContext) -> Reply:
    """Produce the reply for a verified, decoded interaction payload.

    PING is answered before the envelope is validated so the handshake works
    whatever else the body carries. Raises ``pydantic.ValidationError`` for
    malformed envelopes.
    """

    raw_type = payload.get("type") if isinstance(payload, Mapping) else None
    if raw_type == InteractionType.PING and not isinstance(raw_type, bool):
        return pong()

    interaction = Interaction.model_validate(payload)
    if interaction.type == InteractionType.PING:
        return pong()
    if interaction.type == InteractionType.APPLICATION_COMMAND:
        return route_command(interaction, context)
    if interaction.type == InteractionType.MESSAGE_COMPONENT:
        return route_component(interaction, context)

    structlog.get_logger().info("interaction_type_unknown", interaction_type=interaction.type)
    return message_reply("❌ Unknown interaction type")
