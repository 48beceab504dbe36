"""
Terminal chat with several models at once.

Run with ``python -m multi_llm_chat.main``. Mention a participant with
``@name`` to address it directly; anything else goes to everyone.
"""

import asyncio
import logging
import time
import uuid
from typing import List

from dotenv import load_dotenv

from .config import Settings, load_participants_config
from .llm_logger import LLMLogger
from .logging_config import setup_logging
from .models import HUMAN_SENDER, ChatMessage
from .orchestration import LLMOrchestrator, NoActiveModelsError
from .providers.errors import ProviderError

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit"}


async def build_orchestrator(settings: Settings) -> LLMOrchestrator:
    """Create an orchestrator and add every configured participant that comes up."""
    interaction_logger = LLMLogger(settings.log_dir) if settings.log_interactions else None
    orchestrator = LLMOrchestrator(
        settings.orchestrator_config(), interaction_logger=interaction_logger
    )

    for spec in await load_participants_config(settings.participants_config_path):
        try:
            await orchestrator.add_model(spec.id, spec.provider_config(), color=spec.color)
        except (ProviderError, ValueError) as e:
            logger.error(f"Skipping participant {spec.id}: {e}")
            continue
        if not spec.active:
            await orchestrator.pause_model(spec.id)
    return orchestrator


async def chat_loop(orchestrator: LLMOrchestrator) -> None:
    history: List[ChatMessage] = []

    names = ", ".join(p.display_name for p in orchestrator.get_active_participants())
    print(f"Participants: {names or '(none)'}")
    print("Type 'exit' or 'quit' to leave.\n")

    while True:
        text = (await asyncio.to_thread(input, "You: ")).strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break

        message = ChatMessage(
            id=f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}",
            content=text,
            sender=HUMAN_SENDER,
        )
        try:
            routed = await orchestrator.send_message_with_routing(message, history)
        except NoActiveModelsError as e:
            print(f"[error] {e}")
            continue

        history.append(message)
        for model_id, response in routed.responses.items():
            participant = orchestrator.get_participant(model_id)
            name = participant.display_name if participant else model_id
            if response.metadata.error and not response.content:
                print(f"[{name}] error: {response.metadata.error}\n")
                continue
            reply = await orchestrator.handle_llm_response(response, routed.thread_id, message)
            history.append(reply)
            print(f"[{name}] {reply.content}\n")


async def main() -> None:
    load_dotenv()
    settings = Settings()
    setup_logging(settings.log_dir, settings.log_level)

    orchestrator = await build_orchestrator(settings)
    if not orchestrator.get_active_participants():
        print("No participants available; check the participants config.")
        return
    await chat_loop(orchestrator)


def run() -> None:
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, EOFError):
        pass


if __name__ == "__main__":
    run()
