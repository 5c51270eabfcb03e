#!/usr/bin/env python3
"""Interactive chat CLI for the MCP chat backend."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive chat interface that renders streamed conversation updates."""

    def __init__(self, base_url: str = "http://localhost:9001"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.history: list[dict] = []
        self.system_prompt: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(10.0, read=300.0))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]MCP Chat - Interactive Client[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /tools, /system <prompt>, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]Connected to chat backend[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/tools":
                    self._show_tools()
                    continue
                elif user_input.lower().startswith("/system"):
                    self.system_prompt = user_input[len("/system") :].strip() or None
                    self.console.print(f"[yellow]System prompt set to: {self.system_prompt or '(default)'}[/yellow]")
                    continue
                elif user_input.lower() == "/clear":
                    self.history = []
                    self.console.print("[yellow]Conversation cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> None:
        """Submit a message and render updates as they arrive."""
        payload: dict = {"message": message, "history": self.history}
        if self.system_prompt:
            payload["system_prompt"] = self.system_prompt

        finalized: dict[str, dict] = {}
        try:
            with self.client.stream("POST", f"{self.base_url}/conversation", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
                    return

                self.console.print("[bold green]Assistant[/bold green]")
                for line in response.iter_lines():
                    if line.strip():
                        self._handle_update(json.loads(line), finalized)

        except httpx.HTTPError as e:
            self.console.print(f"\n[red]Connection error: {e}[/red]")
            return

        # Only keep the turn once it completed, so history never holds a streaming message
        self.history.extend(finalized.values())

    def _handle_update(self, update: dict, finalized: dict[str, dict]) -> None:
        kind = update["kind"]
        message = update.get("message")

        if kind == "message_delta":
            style = "dim italic" if update.get("thinking") else None
            self.console.print(update["delta"], end="", style=style, markup=False, highlight=False)
        elif kind == "message_finalized":
            finalized[message["id"]] = message
            if message["role"] == "tool":
                self._display_tool_result(message["content"])
            else:
                self.console.print()
        elif kind == "message_added" and message["role"] == "user":
            # User messages are final as submitted
            finalized[message["id"]] = message
        elif kind == "done":
            self.console.print(f"[dim]({update['round']} round(s))[/dim]")

    def _display_tool_result(self, content: str) -> None:
        """Display a tool result with nice formatting."""
        try:
            body = Markdown(f"```json\n{json.dumps(json.loads(content), indent=2)}\n```")
        except json.JSONDecodeError:
            body = content or "(empty result)"

        self.console.print(Panel(body, title="[bold yellow]Tool result[/bold yellow]", border_style="yellow"))
        self.console.print("[bold green]Assistant[/bold green]")

    def _show_tools(self) -> None:
        """Show the tool catalog of connected servers."""
        try:
            response = self.client.get(f"{self.base_url}/tools")
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.console.print(f"[red]Could not fetch tools: {e}[/red]")
            return

        tools = response.json().get("tools", [])
        if not tools:
            self.console.print("[yellow]No tools available[/yellow]")
            return

        tool_list = "\n".join(f"• [bold]{tool['name']}[/bold] ({tool.get('server_id')}): {tool['description']}" for tool in tools)
        self.console.print(Panel(tool_list, title="[cyan]Available Tools[/cyan]", border_style="cyan"))

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /tools - List tools offered by connected MCP servers
• /system <prompt> - Set the system prompt (empty to reset)
• /clear - Clear the conversation
• /quit or /exit - Exit the chat

[bold]Tips:[/bold]
• Ask for something a connected tool can do, e.g. "What's the weather in Tokyo?"
• Tool results are shown in yellow panels before the assistant continues
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:9001"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
