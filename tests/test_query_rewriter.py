from unittest.mock import AsyncMock, MagicMock

import pytest

from app.agents.query_rewriter import QueryRewriter
from app.models.chat import ChatMessage

HISTORY = [
    ChatMessage(role="user", text="who is Marie Curie"),
    ChatMessage(role="assistant", text="Marie Curie was a Polish-French physicist."),
]


def _model(output: str = "", error: Exception | None = None) -> MagicMock:
    model = MagicMock()
    model.complete = AsyncMock(return_value=output, side_effect=error)
    return model


@pytest.mark.asyncio
async def test_empty_history_returns_query_without_model_call():
    model = _model()

    result = await QueryRewriter(model).rewrite("how old was she", [])

    assert result == "how old was she"
    model.complete.assert_not_called()


@pytest.mark.asyncio
async def test_rewrites_follow_up_with_history():
    model = _model("How old was Marie Curie when she died")

    result = await QueryRewriter(model).rewrite("how old was she when she died", HISTORY)

    assert result == "How old was Marie Curie when she died"
    messages = model.complete.await_args.args[0]
    assert model.complete.await_args.kwargs["profile"] == "rewrite"
    assert messages[0]["role"] == "system"
    assert "User: who is Marie Curie" in messages[1]["content"]
    assert "Follow-up question: how old was she when she died" in messages[1]["content"]


@pytest.mark.asyncio
async def test_strips_deliberation_prefix_and_quotes():
    model = _model('<think>she = Marie Curie</think>\nRewritten query: "Marie Curie age at death"\nextra line')

    result = await QueryRewriter(model).rewrite("how old was she", HISTORY)

    assert result == "Marie Curie age at death"


@pytest.mark.asyncio
async def test_model_failure_returns_original():
    model = _model(error=RuntimeError("backend down"))

    result = await QueryRewriter(model).rewrite("how old was she", HISTORY)

    assert result == "how old was she"


@pytest.mark.asyncio
async def test_empty_output_returns_original():
    model = _model("<think>unfinished")

    result = await QueryRewriter(model).rewrite("how old was she", HISTORY)

    assert result == "how old was she"
