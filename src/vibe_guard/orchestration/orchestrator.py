"""Tool chain orchestration.

Plans a chain for a request, then executes it step by step:
- dependency check (earlier steps must have run, whatever their outcome)
- dry-run gate (write tools rejected, not retried)
- handler call with per-attempt timeout and linear backoff retries
- one bounded recovery attempt for transient failures
- abort when a high-risk chain hits an unrecoverable failure

Every step outcome is written to the audit log as ``tool:<name>``.
"""

import asyncio
import re
import time
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from vibe_guard.config import VibeSettings, get_settings
from vibe_guard.errors import ErrorCode, ToolError
from vibe_guard.execution.executor import ProcessExecutor
from vibe_guard.logging import Loggers, bind_context, unbind_context
from vibe_guard.orchestration.handlers import Approver, ToolContext
from vibe_guard.orchestration.models import (
    OrchestrationResult,
    ShellCommandParams,
    ToolChain,
    ToolExecution,
    params_to_dict,
)
from vibe_guard.orchestration.planner import RequestPlanner
from vibe_guard.orchestration.registry import ToolRegistry, get_registry
from vibe_guard.security.audit import AuditLog
from vibe_guard.security.models import RiskLevel
from vibe_guard.security.validator import classify_tool, is_dry_run, validate_tool_execution

logger = Loggers.orchestration()

RECOVERABLE_KEYWORDS = ("timeout", "network", "temporary", "busy", "locked")

# Policy outcomes are final: retrying cannot change them
NON_RETRYABLE_CODES = frozenset(
    {ErrorCode.BLOCKED, ErrorCode.DRY_RUN, ErrorCode.APPROVAL_DENIED, ErrorCode.INVALID_INPUT}
)

_NPM = re.compile(r"\bnpm\b")


@dataclass
class StepOutcome:
    """Result of running one ToolExecution (all attempts)."""

    success: bool
    data: Any = None
    error: ToolError | None = None
    attempts: int = 0


class ToolOrchestrator:
    """Plans and executes tool chains.

    Example:
        orchestrator = ToolOrchestrator(ProcessExecutor(audit_log=audit),
                                        approver=lambda req: True)
        chain = await orchestrator.analyze_and_plan("read the config", {"file_path": "a.yaml"})
        result = await orchestrator.execute_chain(chain)
    """

    def __init__(
        self,
        executor: ProcessExecutor,
        registry: ToolRegistry | None = None,
        audit_log: AuditLog | None = None,
        settings: VibeSettings | None = None,
        approver: Approver | None = None,
        recovery_delay: float = 2.0,
        retry_base_delay: float = 1.0,
        planner: RequestPlanner | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            executor: Executor used by shell-backed tools.
            registry: Tool registry (default: the built-in handlers).
            audit_log: Audit log for step outcomes (default: the executor's).
            settings: Settings for workspace and dry-run mode.
            approver: Called for shell commands requiring approval; None denies.
            recovery_delay: Seconds to wait before a recovery attempt.
            retry_base_delay: Linear backoff base between step attempts.
            planner: Request planner (default: RequestPlanner over ``registry``).
        """
        self.executor = executor
        self.registry = registry if registry is not None else get_registry()
        self.audit_log = audit_log if audit_log is not None else executor.audit_log
        self._settings = settings
        self.approver = approver
        self.recovery_delay = recovery_delay
        self.retry_base_delay = retry_base_delay
        self.planner = planner if planner is not None else RequestPlanner(self.registry)

    @property
    def settings(self) -> VibeSettings:
        return self._settings or get_settings()

    def _context(self, execution: ToolExecution) -> ToolContext:
        return ToolContext(
            executor=self.executor,
            workspace_dir=Path(self.settings.workspace_dir),
            approver=self.approver,
            timeout=execution.timeout,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def analyze_and_plan(
        self,
        request: str,
        context: dict[str, Any] | None = None,
    ) -> ToolChain:
        """Analyze a request and build its tool chain."""
        analysis = self.planner.analyze(request)
        chain = self.planner.build(analysis, context, request)
        logger.info(
            "chain_planned",
            steps=len(chain.tools),
            risk_level=chain.risk_level,
            complexity=analysis.complexity,
            operations=list(analysis.operations),
        )
        return chain

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_chain(self, chain: ToolChain) -> OrchestrationResult:
        """Execute a chain in list order.

        Log lines emitted while the chain runs carry a ``chain_id``.

        Returns:
            OrchestrationResult with partial results and errors on failure.
        """
        bind_context(chain_id=uuid.uuid4().hex[:8])
        try:
            return await self._run_chain(chain)
        finally:
            unbind_context("chain_id")

    async def _run_chain(self, chain: ToolChain) -> OrchestrationResult:
        started = time.time()
        results: dict[str, Any] = {}
        errors: dict[str, str] = {}
        executed: set[str] = set()
        aborted = False
        dry_run = is_dry_run(self._settings)

        for execution in chain.tools:
            name = execution.tool_name

            missing = [dep for dep in execution.depends_on if dep not in executed]
            if missing:
                error = ToolError(
                    message=f"Missing dependencies: {', '.join(missing)}",
                    error_code=ErrorCode.MISSING_DEPENDENCY,
                    tool_name=name,
                )
                errors[name] = error.message
                logger.warning("step_skipped", tool=name, missing=missing)
                self._audit_step(
                    execution, RiskLevel.LOW, StepOutcome(success=False, error=error)
                )
                continue

            validation = validate_tool_execution(name, dry_run=dry_run)
            if not validation.allowed:
                error = ToolError(
                    message=validation.reason or "Tool execution rejected",
                    error_code=ErrorCode.DRY_RUN,
                    tool_name=name,
                )
                outcome = StepOutcome(success=False, error=error)
            else:
                outcome = await self.execute_with_retry(execution)
            executed.add(name)

            if outcome.success:
                results[name] = outcome.data
                self._audit_step(execution, validation.risk_level, outcome)
                continue

            errors[name] = outcome.error.message
            recovered = False
            if self.can_recover(name, outcome.error):
                logger.warning("step_recovery_started", tool=name, error=outcome.error.message)
                recovery = await self.attempt_recovery(execution, outcome.error)
                if recovery.success:
                    results[name] = recovery.data
                    del errors[name]
                    recovered = True
                    outcome = recovery

            self._audit_step(execution, validation.risk_level, outcome, recovered=recovered)
            if recovered:
                continue

            logger.warning("step_failed", tool=name, error=outcome.error.message)
            if chain.risk_level == "high":
                logger.error("chain_aborted", tool=name, risk_level=chain.risk_level)
                aborted = True
                break

        duration = time.time() - started
        result = OrchestrationResult(
            success=not errors,
            tool_chain=chain,
            results=results,
            errors=errors,
            duration=duration,
            aborted=aborted,
        )
        logger.info(
            "chain_completed",
            success=result.success,
            steps=len(chain.tools),
            failed=len(errors),
            aborted=aborted,
            duration=round(duration, 3),
        )
        return result

    async def execute_with_retry(self, execution: ToolExecution) -> StepOutcome:
        """Run one step, retrying with linear backoff.

        Each attempt is bounded by ``execution.timeout``. Policy failures
        (blocked, dry-run, approval denied, invalid input) are not retried.
        """
        definition = self.registry.get(execution.tool_name)
        if definition is None:
            return StepOutcome(
                success=False,
                error=ToolError(
                    message=f"Tool not found: {execution.tool_name}",
                    error_code=ErrorCode.NOT_FOUND,
                    tool_name=execution.tool_name,
                ),
            )

        ctx = self._context(execution)
        last_error: ToolError | None = None
        attempts = 0

        for attempt in range(execution.retry_count + 1):
            attempts = attempt + 1
            started = time.time()
            try:
                data = await asyncio.wait_for(
                    definition.handler(execution.params, ctx), timeout=execution.timeout
                )
                logger.debug(
                    "step_succeeded",
                    tool=execution.tool_name,
                    attempt=attempts,
                    duration=round(time.time() - started, 3),
                )
                return StepOutcome(success=True, data=data, attempts=attempts)
            except asyncio.TimeoutError:
                last_error = ToolError(
                    message=f"Tool execution timed out after {execution.timeout}s",
                    error_code=ErrorCode.TIMEOUT,
                    recoverable=True,
                    tool_name=execution.tool_name,
                )
            except ToolError as e:
                e.tool_name = e.tool_name or execution.tool_name
                last_error = e
            except Exception as e:
                last_error = ToolError(
                    message=str(e),
                    error_code=ErrorCode.INTERNAL_ERROR,
                    tool_name=execution.tool_name,
                )

            if last_error.error_code in NON_RETRYABLE_CODES:
                break

            if attempt < execution.retry_count:
                delay = self.retry_base_delay * (attempt + 1)
                logger.info(
                    "step_retry",
                    tool=execution.tool_name,
                    attempt=attempts + 1,
                    max_attempts=execution.retry_count + 1,
                    delay=delay,
                    error=last_error.message,
                )
                await asyncio.sleep(delay)

        return StepOutcome(success=False, error=last_error, attempts=attempts)

    def can_recover(self, tool_name: str, error: ToolError | Exception) -> bool:
        """Whether a failure looks transient."""
        if isinstance(error, ToolError):
            if error.error_code in NON_RETRYABLE_CODES:
                return False
            if error.error_code == ErrorCode.TIMEOUT:
                return True
        message = str(error).lower()
        return any(keyword in message for keyword in RECOVERABLE_KEYWORDS)

    async def attempt_recovery(
        self,
        execution: ToolExecution,
        error: ToolError | Exception,
    ) -> StepOutcome:
        """Wait, then retry once; shell steps swap ``npm`` for ``yarn``."""
        await asyncio.sleep(self.recovery_delay)

        if isinstance(execution.params, ShellCommandParams) and _NPM.search(
            execution.params.command
        ):
            alternative = _NPM.sub("yarn", execution.params.command, count=1)
            logger.info(
                "step_recovery_alternative",
                tool=execution.tool_name,
                command=alternative,
            )
            execution = replace(
                execution, params=replace(execution.params, command=alternative)
            )

        return await self.execute_with_retry(execution)

    def _audit_step(
        self,
        execution: ToolExecution,
        risk_level: RiskLevel,
        outcome: StepOutcome,
        recovered: bool = False,
    ) -> None:
        if self.audit_log is None:
            return

        if outcome.success:
            result = "success"
        elif outcome.error is not None and outcome.error.error_code in NON_RETRYABLE_CODES:
            result = "blocked"
        else:
            result = "failure"

        params = params_to_dict(execution.params)
        self.audit_log.log_event(
            f"tool:{execution.tool_name}",
            risk_level=risk_level,
            approved=result != "blocked",
            command=params.get("command"),
            result=result,
            operation_type=classify_tool(execution.tool_name),
            attempts=outcome.attempts,
            recovered=recovered or None,
            error=outcome.error.message if outcome.error else None,
            error_code=outcome.error.error_code if outcome.error else None,
        )

    async def orchestrate(
        self,
        request: str,
        context: dict[str, Any] | None = None,
    ) -> OrchestrationResult:
        """Plan and execute a request."""
        chain = await self.analyze_and_plan(request, context)
        return await self.execute_chain(chain)


async def orchestrate_tools(
    request: str,
    executor: ProcessExecutor,
    context: dict[str, Any] | None = None,
    **kwargs: Any,
) -> OrchestrationResult:
    """Convenience wrapper: build an orchestrator and run one request."""
    orchestrator = ToolOrchestrator(executor, **kwargs)
    return await orchestrator.orchestrate(request, context)
