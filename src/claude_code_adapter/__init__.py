"""Claude Code adapter - stream chat responses from the Claude Code CLI.

Converts a multi-turn conversation into a single prompt, launches the CLI
through a host runtime, and turns its stream-json output into text chunks
with exactly one completion or error callback per request.
"""

from .bus import EventBus, Subscription
from .formatter import PromptFormatter
from .host import (
    HostRuntime,
    LaunchRequest,
    MockHost,
    SubprocessHost,
    ToolAvailability,
    check_tool_availability,
)
from .messages import (
    AssistantMessage,
    Attachment,
    Conversation,
    Message,
    ModelConfig,
    ToolResultsMessage,
    UserMessage,
)
from .models import map_model_name, resolve_model
from .session import ClaudeCodeProvider, LaunchError, RequestSession
from .settings import AdapterSettings

__all__ = [
    # Streaming
    "ClaudeCodeProvider",
    "RequestSession",
    "LaunchError",
    "PromptFormatter",
    # Host runtime
    "HostRuntime",
    "LaunchRequest",
    "ToolAvailability",
    "SubprocessHost",
    "MockHost",
    "check_tool_availability",
    "EventBus",
    "Subscription",
    # Conversation
    "Attachment",
    "UserMessage",
    "AssistantMessage",
    "ToolResultsMessage",
    "Message",
    "Conversation",
    "ModelConfig",
    # Models and settings
    "map_model_name",
    "resolve_model",
    "AdapterSettings",
]
