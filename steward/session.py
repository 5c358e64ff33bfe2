"""
Session wiring.

Builds the collaborators of one Steward session from a StewardConfig:
provider client, shell executor, tool registry, conversation engine and
checkpoint manager.
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from steward.checkpoints.manager import CheckpointManager
from steward.checkpoints.models import CheckpointMetadata
from steward.checkpoints.snapshot import FileSnapshotService
from steward.config import StewardConfig, get_api_key
from steward.conversation.chat_queue import ChatQueue
from steward.conversation.engine import CompletionCallback, ConversationEngine
from steward.conversation.tokens import TiktokenTokenizer
from steward.logging import SessionLogEntry, now_iso, session_logger, set_session_id
from steward.provider.base import ChatClient
from steward.provider.openai_client import OpenAIChatClient
from steward.shell.executor import BashExecutor
from steward.state import DevelopmentMode
from steward.tools.builtin import create_builtin_registry
from steward.tools.registry import ToolContext

logger = logging.getLogger(__name__)


@dataclass
class StewardSession:
    """Everything one interactive or non-interactive session needs."""

    config: StewardConfig
    engine: ConversationEngine
    executor: BashExecutor
    checkpoints: CheckpointManager
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def client(self) -> ChatClient:
        return self.engine.client

    def save_checkpoint(self, name: str | None = None) -> CheckpointMetadata:
        return self.checkpoints.save_checkpoint(
            name,
            self.engine.messages,
            provider=self.client.provider_name,
            model=self.client.model,
        )

    def load_checkpoint(self, name: str, restore_files: bool = True) -> CheckpointMetadata:
        """Replace the conversation with a checkpoint's and optionally restore its files."""
        data = self.checkpoints.load_checkpoint(name, validate_integrity=True)
        if restore_files:
            self.checkpoints.restore_files(data)
        self.engine.load_messages(data.messages)
        return data.metadata

    async def close(self) -> None:
        """Stop running commands and release the provider client."""
        self.executor.close()
        close = getattr(self.client, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.debug(f"Error closing provider client: {e}")


def create_session(
    config: StewardConfig,
    chat_queue: ChatQueue | None = None,
    mode: DevelopmentMode = DevelopmentMode.NORMAL,
    non_interactive: bool = False,
    client: ChatClient | None = None,
    on_conversation_complete: CompletionCallback | None = None,
) -> StewardSession:
    """
    Assemble a session from configuration.

    Args:
        config: Loaded configuration
        chat_queue: Sink for rendered conversation events
        mode: Initial development mode
        non_interactive: Exit instead of asking for tool confirmation
        client: Provider client override (default: OpenAI-compatible client)
        on_conversation_complete: Called whenever a turn ends

    Raises:
        ConfigError: If no client is given and no API key is configured
    """
    workspace = Path(config.workspace_root).resolve()
    if client is None:
        client = OpenAIChatClient(
            api_key=get_api_key(config),
            model=config.model,
            base_url=config.base_url,
            provider_name=config.provider,
        )

    executor = BashExecutor(
        cwd=workspace,
        preview_length=config.bash_output_preview_length,
        progress_interval=config.bash_progress_interval,
    )

    context = ToolContext(
        workspace_root=workspace,
        bash_executor=executor,
        bash_output_max_chars=config.bash_output_max_chars,
    )
    registry = create_builtin_registry(context)

    engine = ConversationEngine(
        client=client,
        registry=registry,
        chat_queue=chat_queue,
        mode=mode,
        workspace_root=workspace,
        tokenizer=TiktokenTokenizer(config.model) if config.context_window else None,
        context_window=config.context_window,
        non_interactive=non_interactive,
        max_self_corrections=config.max_self_corrections,
        on_conversation_complete=on_conversation_complete,
    )
    # The engine owns the mode; tools read it through this accessor
    context.get_mode = engine.get_mode

    checkpoints = CheckpointManager(
        workspace,
        FileSnapshotService(workspace, max_files=config.max_checkpoint_files),
    )

    session = StewardSession(config=config, engine=engine, executor=executor, checkpoints=checkpoints)
    set_session_id(session.session_id)
    session_logger.info(
        SessionLogEntry(
            timestamp=now_iso(),
            session_id=session.session_id,
            event_type="start",
            to_state=mode.value,
        ).to_json()
    )
    return session
