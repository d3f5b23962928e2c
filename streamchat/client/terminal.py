"""Interactive terminal front-end for a running chat stream server."""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import TextIO

import httpx

from streamchat.client.session import ChatSession, ConversationMessage, TurnOutcome
from streamchat.config import Configuration

QUIT_COMMANDS = {"/quit", "/exit"}


class TerminalRenderer:
    """Prints each assistant message incrementally as its content grows."""

    def __init__(self, out: TextIO | None = None):
        self.out = out or sys.stdout
        self._printed: dict[str, int] = {}

    def __call__(self, message: ConversationMessage) -> None:
        if message.role != "assistant":
            return

        printed = self._printed.get(message.id)
        if printed is None:
            self.out.write("assistant> ")
            printed = 0

        if message.failed:
            # Error text replaces whatever was streamed so far
            self.out.write(f"\n{message.content}")
            printed = len(message.content)
        else:
            self.out.write(message.content[printed:])
            printed = len(message.content)

        self._printed[message.id] = printed
        self.out.flush()

    def finish(self, outcome: TurnOutcome) -> None:
        if outcome is TurnOutcome.CANCELLED:
            self.out.write(" [stopped]")
        self.out.write("\n")
        self.out.flush()


class TerminalChat:
    """Read-eval loop: one streamed reply per line of input, Ctrl-C stops a reply."""

    def __init__(self, session: ChatSession, renderer: TerminalRenderer):
        self.session = session
        self.renderer = renderer

    async def ask(self, text: str) -> TurnOutcome:
        loop = asyncio.get_running_loop()
        handler_installed = False
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, self.session.cancel)
            handler_installed = True
        try:
            outcome = await self.session.send(text)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
        self.renderer.finish(outcome)
        return outcome

    async def run(self) -> None:
        while True:
            try:
                text = await asyncio.to_thread(input, "you> ")
            except EOFError:
                return
            if text.strip() in QUIT_COMMANDS:
                return
            if not self.session.can_send(text):
                continue
            await self.ask(text)


async def run_terminal_chat(
    configuration: Configuration, system_prompt: str | None = None
) -> None:
    client_config = configuration.get_client_config()
    stream_path = configuration.get_server_config()["stream_path"]

    async with httpx.AsyncClient(
        base_url=client_config["base_url"], timeout=client_config["timeout"]
    ) as http_client:
        renderer = TerminalRenderer()
        session = ChatSession(
            http_client,
            endpoint=stream_path,
            on_update=renderer,
            system_prompt=system_prompt,
        )
        await TerminalChat(session, renderer).run()
