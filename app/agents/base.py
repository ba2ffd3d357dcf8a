from __future__ import annotations

from typing import Any

from loguru import logger

from app.llm_client import ModelClient


class BaseToolAgent:
    """Base agent that wraps the model's tool-calling loop.

    Subclasses define `tools` and `handle_tool_call`. `run` drives up to
    `max_iterations` non-streaming completions, appending each tool-call
    message and its tool results to the running message list, and stops at
    the first response without tool calls. Exceptions from the model or
    from tool execution propagate to the caller.
    """

    name: str = "base"
    tools: list[dict[str, Any]] = []

    def __init__(self, model_client: ModelClient, *, max_iterations: int = 5):
        self.model_client = model_client
        self.max_iterations = max(int(max_iterations), 1)
        self.iterations = 0

    async def handle_tool_call(self, tool_name: str, tool_input: dict[str, Any]) -> str:
        """Execute a tool call and return its result text."""
        return f"Error: tool '{tool_name}' is not available."

    async def run(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Run the loop on a copy of `messages` and return the extended list."""
        messages = list(messages)

        for _ in range(self.max_iterations):
            self.iterations += 1
            response = await self.model_client.complete_with_tools(
                messages,
                self.tools,
                profile="tool",
            )

            if not response.tool_calls:
                return messages

            messages.append(response.to_message())
            for call in response.tool_calls:
                logger.info(f"{self.name} agent tool call: {call.name} {call.arguments}")
                result_text = await self.handle_tool_call(call.name, call.arguments)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": result_text,
                    }
                )

        logger.warning(f"{self.name} agent reached {self.max_iterations} iterations with pending tool calls")
        return messages
