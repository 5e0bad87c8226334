"""Tests for the click command-line entry point."""

from __future__ import annotations

import asyncio
import signal
import sys
import time

import pytest
from click.testing import CliRunner

from reverie import cli
from reverie.config import OrchestratorConfig
from reverie.llm.errors import ProviderError
from reverie.service import ResearchModelService
from reverie.tools.base import Tool
from reverie.tools.builtin import register_builtins
from reverie.tools.registry import ToolRegistry
from reverie.types import EffortLevel, LLMResponse, StreamChunk, ToolCall, ToolParameter


@pytest.fixture
def run_cli(monkeypatch):
    """Invoke ``reverie`` with the given adapters instead of configured ones."""

    def _run(args, *adapters, providers_configured=True):
        registry = ToolRegistry()
        register_builtins(registry)
        service = ResearchModelService.from_config(
            OrchestratorConfig(max_backoff=0), registry=registry, adapters=list(adapters),
        )
        config = OrchestratorConfig()
        if providers_configured:
            config.providers = [a.spec for a in adapters]
        monkeypatch.setattr(cli, "load_config", lambda path: config)
        monkeypatch.setattr(cli.ResearchModelService, "from_config", lambda cfg: service)
        return CliRunner().invoke(cli.main, args)

    return _run


class TestCli:
    def test_single_shot(self, run_cli, make_adapter):
        adapter = make_adapter("a", [LLMResponse(content="Qubits hold superpositions.")])

        result = run_cli(["What", "is", "a", "qubit?"], adapter)

        assert result.exit_code == 0, result.output
        assert "Qubits hold superpositions." in result.output
        assert "a / a-model" in result.output
        assert adapter.calls[0].messages[-1]["content"] == "What is a qubit?"

    def test_effort_and_model(self, run_cli, make_adapter):
        adapter = make_adapter("a", [LLMResponse(content="ok")], models=["small", "large"])

        result = run_cli(["-e", "high", "-m", "large", "-q", "hi"], adapter)

        assert result.exit_code == 0, result.output
        assert adapter.calls[0].model == "large"
        assert adapter.calls[0].max_tokens == 8192
        assert "Trying" not in result.output

    def test_progress_shown(self, run_cli, make_adapter):
        a = make_adapter("a", [ProviderError("quota", status_code=402)])
        b = make_adapter("b", [LLMResponse(content="ok")])

        result = run_cli(["hi"], a, b)

        assert result.exit_code == 0, result.output
        assert "falling back to b" in result.output

    def test_tools(self, run_cli, make_adapter):
        adapter = make_adapter("a", [
            LLMResponse(tool_calls=[ToolCall(name="calculate_sum", arguments={"a": 1, "b": 2})]),
            LLMResponse(content="The answer is 3."),
        ])

        result = run_cli(["--tools", "-q", "add 1 and 2"], adapter)

        assert result.exit_code == 0, result.output
        assert "The answer is 3." in result.output
        assert "calculate_sum" in result.output
        assert "2 round(s)" in result.output

    def test_stream(self, run_cli, make_adapter):
        adapter = make_adapter("a", stream_script=[["Quan", "tum ", "computing"]])

        result = run_cli(["--stream", "What is quantum computing?"], adapter)

        assert result.exit_code == 0, result.output
        assert "Quantum computing" in result.output

    def test_failure_exit_code(self, run_cli, make_adapter):
        adapter = make_adapter("a", [ProviderError("quota", status_code=402)])

        result = run_cli(["-q", "hi"], adapter)

        assert result.exit_code == 1
        assert "max_fallbacks_exceeded" in result.output
        assert "Hint: check plan or billing" in result.output

    def test_stream_with_tools(self, run_cli, make_adapter):
        adapter = make_adapter("a", stream_script=[
            [StreamChunk(text="", tool_calls=[
                ToolCall(name="calculate_sum", arguments={"a": 1, "b": 2}),
            ])],
            ["The answer ", "is 3."],
        ])

        result = run_cli(["--stream", "--tools", "add 1 and 2"], adapter)

        assert result.exit_code == 0, result.output
        assert "The answer is 3." in result.output
        assert "Executing tool calculate_sum" in result.output
        assert "2 round(s)" in result.output

    def test_list_tools(self, run_cli):
        result = run_cli(["--list-tools"])

        assert result.exit_code == 0, result.output
        assert "calculate_sum(" in result.output

    def test_missing_prompt(self, run_cli):
        result = run_cli([])

        assert result.exit_code == 2
        assert "Missing argument" in result.output

    def test_disabled_providers_warning(self, run_cli, make_adapter):
        result = run_cli(["hi"], make_adapter("a", enabled=False))

        assert result.exit_code == 1
        assert "Every configured provider is disabled" in result.output

    def test_no_providers_warning(self, run_cli):
        result = run_cli(["hi"], providers_configured=False)

        assert result.exit_code == 1
        assert "No providers configured" in result.output
        assert "no_available_models" in result.output


class SelfInterruptingTool(Tool):
    name = "interrupt"
    description = "Sends SIGINT to this process, then hangs"
    parameters: list[ToolParameter] = []

    async def execute(self, **kwargs):
        signal.raise_signal(signal.SIGINT)
        await asyncio.sleep(5)
        return "late"


@pytest.mark.skipif(sys.platform == "win32", reason="needs loop signal handlers")
class TestInterrupt:
    async def test_sigint_cancels_run(self, make_adapter):
        adapter = make_adapter("a", [
            LLMResponse(tool_calls=[ToolCall(name="interrupt", arguments={})]),
        ])
        service = ResearchModelService.from_config(
            OrchestratorConfig(max_backoff=0),
            registry=ToolRegistry([SelfInterruptingTool()]),
            adapters=[adapter],
        )

        started = time.monotonic()
        code = await cli._run(
            service, "hi", EffortLevel.MEDIUM, stream=False, tools=True,
            max_iterations=None, model=None, quiet=True,
        )

        assert code == 130
        assert time.monotonic() - started < 2
