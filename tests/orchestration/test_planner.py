"""Tests for request analysis and chain templates."""

import json

import pytest

from vibe_guard.orchestration.models import (
    ReadFileParams,
    ShellCommandParams,
    ToolExecution,
    WriteFileParams,
)
from vibe_guard.orchestration.planner import STARTER_HTML, RequestPlanner
from vibe_guard.orchestration.registry import DEFAULT_TOOL_TIMEOUT, ToolRegistry


@pytest.fixture
def planner() -> RequestPlanner:
    return RequestPlanner()


class TestAnalyze:
    def test_simple_read(self, planner: RequestPlanner):
        analysis = planner.analyze("Read the config file")

        assert analysis.operations == ("read",)
        assert analysis.complexity == "simple"

    def test_medium(self, planner: RequestPlanner):
        analysis = planner.analyze("read the file and update the header")

        assert analysis.operations == ("read", "write")
        assert analysis.complexity == "medium"

    def test_project_is_complex(self, planner: RequestPlanner):
        analysis = planner.analyze("create a react project")

        assert analysis.complexity == "complex"
        assert "frontend" in analysis.domains

    def test_many_operations_complex(self, planner: RequestPlanner):
        analysis = planner.analyze("build it, run it and test it")

        assert set(analysis.operations) == {"create", "execute", "test"}
        assert analysis.complexity == "complex"

    def test_whole_word_operations(self, planner: RequestPlanner):
        """'rerun' is not 'run'."""
        assert "execute" not in planner.analyze("rerunning is fun").operations

    def test_keywords_use_substrings(self, planner: RequestPlanner):
        analysis = planner.analyze("please check this")

        assert "read" in analysis.keywords
        assert "test" in analysis.keywords

    def test_domains(self, planner: RequestPlanner):
        analysis = planner.analyze("deploy the express api with docker")

        assert set(analysis.domains) == {"backend", "devops"}


class TestBuild:
    def _plan(self, planner: RequestPlanner, request: str, context=None):
        return planner.build(planner.analyze(request), context, request)

    def test_simple_read_chain(self, planner: RequestPlanner):
        chain = self._plan(planner, "read it", {"file_path": "a.txt"})

        assert [t.tool_name for t in chain.tools] == ["read_file"]
        assert chain.tools[0].params == ReadFileParams(path="a.txt")
        assert chain.risk_level == "low"

    def test_simple_write_chain_medium(self, planner: RequestPlanner):
        chain = self._plan(planner, "write it", {"file_path": "a.txt", "content": "x"})

        assert chain.tools[0].params == WriteFileParams(file_path="a.txt", content="x")
        assert chain.risk_level == "medium"

    def test_html_page(self, planner: RequestPlanner):
        chain = self._plan(planner, "generate an html page")

        assert chain.tools[0].params == WriteFileParams(
            file_path="index.html", content=STARTER_HTML
        )
        assert chain.risk_level == "low"

    def test_react_project_chain(self, planner: RequestPlanner):
        chain = self._plan(
            planner,
            "create a react project, install and test it",
            {"project_name": "demo"},
        )

        assert [t.tool_name for t in chain.tools] == [
            "get_project_info",
            "check_dependency",
            "create_directory",
            "write_file",
            "run_shell_command",
            "run_tests",
            "run_lint",
        ]
        assert chain.risk_level == "high"
        assert chain.tools[4].params == ShellCommandParams(command="npm install", directory="demo")
        assert json.loads(chain.tools[3].params.content)["name"] == "demo"
        assert chain.estimated_duration == sum(t.timeout for t in chain.tools)

    def test_read_then_write_depends(self, planner: RequestPlanner):
        chain = self._plan(
            planner,
            "read the file then modify it",
            {"file_path": "a.txt", "new_content": "b"},
        )

        assert [t.tool_name for t in chain.tools] == ["read_file", "write_file"]
        assert chain.tools[1].depends_on == ("read_file",)
        assert chain.risk_level == "medium"

    def test_unmatched_request_empty_chain(self, planner: RequestPlanner):
        chain = self._plan(planner, "hello there")

        assert chain.tools == ()
        assert chain.estimated_duration == 0


class TestToolExecution:
    def test_params_must_match_tool(self):
        with pytest.raises(ValueError):
            ToolExecution(tool_name="read_file", params=WriteFileParams(file_path="x"))

    def test_unknown_tool_rejected(self):
        with pytest.raises(ValueError):
            ToolExecution(tool_name="teleport", params=ReadFileParams())


class TestStepTimeouts:
    def test_timeouts_from_registry(self, planner: RequestPlanner):
        chain = planner.build(planner.analyze("create a react project"), {"project_name": "demo"})

        assert [t.timeout for t in chain.tools] == [30.0, 10.0, 15.0, 10.0]

    def test_custom_registry_timeout(self):
        registry = ToolRegistry()

        @registry.register(name="read_file", timeout_seconds=2.5)
        async def quick_read(params, ctx):
            return {"success": True}

        planner = RequestPlanner(registry)
        chain = planner.build(planner.analyze("read it"), {"file_path": "a.txt"})

        assert chain.tools[0].timeout == 2.5
        assert chain.estimated_duration == 2.5

    def test_unregistered_tool_gets_default_timeout(self):
        planner = RequestPlanner(ToolRegistry())

        step = planner.create_tool_execution("read_file", ReadFileParams())

        assert step.timeout == DEFAULT_TOOL_TIMEOUT
