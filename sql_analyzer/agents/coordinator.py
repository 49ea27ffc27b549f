"""
Multi-Agent Coordinator

Runs the analysis tools for one SQL request and aggregates their results.
Each tool runs through the resilient executor; a tool that still fails
contributes its default result, so partial success is the normal outcome
rather than an error.
"""

import asyncio
import hashlib
import json
import logging
import time
import uuid

from sql_analyzer.agents.tools import (
    TOOL_VARIANTS,
    AnalysisTool,
    CallTracker,
    SQLInfo,
    ToolVariant,
    inspect_sql,
)
from sql_analyzer.config import (
    CoordinatorSettings,
    ParsingSettings,
    ResilienceSettings,
    Settings,
    get_settings,
)
from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.factory import LLMProviderFactory
from sql_analyzer.models.analysis import (
    AnalysisMetadata,
    AnalysisRequest,
    CompositeResult,
    ExecutionMode,
    ToolResult,
)
from sql_analyzer.models.errors import AnalysisConfigError, ResilienceError
from sql_analyzer.prompts.loader import PromptLoader
from sql_analyzer.resilience.circuit_breaker import CircuitBreaker
from sql_analyzer.resilience.executor import ResilientExecutor

logger = logging.getLogger(__name__)


class MultiAgentCoordinator:
    """
    Coordinate the performance, security and standards analysis tools.

    Args:
        llm: Provider shared by every tool
        config: Coordinator settings (timeouts, retries, breaker, cache)
        parsing: Response recovery settings used by the repairer
        executor: Resilient executor (defaults to one bound to the default registry)
        prompt_loader: Template loader shared by the tools
        variants: Dimension table (defaults to TOOL_VARIANTS)
        repair_llm: Provider for repair calls (defaults to ``llm``)
        repair_model: Model override for repair calls
    """

    def __init__(
        self,
        llm: BaseLLMProvider,
        config: CoordinatorSettings | None = None,
        parsing: ParsingSettings | None = None,
        executor: ResilientExecutor | None = None,
        prompt_loader: PromptLoader | None = None,
        variants: dict[str, ToolVariant] | None = None,
        repair_llm: BaseLLMProvider | None = None,
        repair_model: str | None = None,
    ):
        self.llm = llm
        self.config = config or CoordinatorSettings()
        self.parsing = parsing or ParsingSettings()
        self.executor = executor or ResilientExecutor.from_settings(ResilienceSettings())
        self.variants = dict(TOOL_VARIANTS if variants is None else variants)
        if not self.variants:
            raise AnalysisConfigError("At least one analysis variant is required")

        loader = prompt_loader or PromptLoader()
        repair_options = {
            "model": repair_model,
            "max_chars": self.parsing.repair_max_chars,
            "max_tokens": self.parsing.repair_max_tokens,
            "confidence_factor": self.parsing.repair_confidence_factor,
            "partial_extraction": self.parsing.partial_extraction_enabled,
        }
        self.tools: dict[str, AnalysisTool] = {
            name: AnalysisTool(
                variant,
                llm,
                prompt_loader=loader,
                repair_llm=repair_llm,
                repair_enabled=self.parsing.repair_enabled,
                repair_options=repair_options,
            )
            for name, variant in self.variants.items()
        }
        self._cache: dict[str, tuple[float, CompositeResult]] = {}
        self._batch_semaphore: asyncio.Semaphore | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        llm: BaseLLMProvider | None = None,
    ) -> "MultiAgentCoordinator":
        """Build a coordinator and its provider from application settings."""
        settings = settings or get_settings()
        provider = llm or LLMProviderFactory.create_default_provider(settings.llm)
        return cls(
            llm=provider,
            config=settings.coordinator,
            parsing=settings.parsing,
            executor=ResilientExecutor.from_settings(settings.resilience),
            repair_model=settings.llm.repair_model,
        )

    @property
    def dimensions(self) -> list[str]:
        return list(self.variants)

    async def analyze(
        self,
        request: AnalysisRequest,
        enabled_dimensions: list[str] | None = None,
        mode: ExecutionMode | str | None = None,
    ) -> CompositeResult:
        """
        Analyze one SQL request across the enabled dimensions.

        Args:
            request: SQL text and context
            enabled_dimensions: Subset of dimensions (None enables all)
            mode: Parallel or sequential (defaults to the configured mode)

        Returns:
            CompositeResult listing every known dimension

        Raises:
            AnalysisConfigError: If no known dimension is enabled
        """
        dimensions = self._resolve_dimensions(enabled_dimensions)
        execution_mode = self._resolve_mode(mode)

        cache_key = self._cache_key(request, dimensions) if self.config.cache_enabled else None
        if cache_key is not None:
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.debug("Returning cached analysis", extra={"cache_key": cache_key[:12]})
                return cached

        request_id = uuid.uuid4().hex
        started = time.perf_counter()
        sql_info = inspect_sql(request.sql)
        tracker = CallTracker()

        logger.info(
            "Starting SQL analysis",
            extra={
                "request_id": request_id,
                "dimensions": dimensions,
                "mode": execution_mode.value,
                "statement_type": sql_info.statement_type,
                "database_type": request.database_type,
            },
        )

        timed_out = False
        if execution_mode == ExecutionMode.PARALLEL:
            results, timed_out = await self._run_parallel(request, dimensions, sql_info, tracker)
        else:
            results = await self._run_sequential(request, dimensions, sql_info, tracker)

        per_tool_results: dict[str, ToolResult | None] = {
            name: results.get(name) if name in dimensions else None for name in self.variants
        }
        confidences = [result.confidence for result in results.values() if result.success]
        aggregate = round(sum(confidences) / len(confidences), 4) if confidences else 0.0
        failed_tools = [name for name, result in results.items() if not result.success]
        duration_ms = (time.perf_counter() - started) * 1000

        composite = CompositeResult(
            per_tool_results=per_tool_results,
            aggregate_confidence=aggregate,
            enabled_dimensions=dimensions,
            metadata=AnalysisMetadata(
                request_id=request_id,
                execution_mode=execution_mode,
                duration_ms=duration_ms,
                llm_calls=tracker.llm_calls,
                tool_calls=tracker.tool_calls,
                failed_tools=failed_tools,
                timed_out=timed_out,
                statement_type=sql_info.statement_type,
            ),
        )

        log = logger.warning if failed_tools else logger.info
        log(
            "Completed SQL analysis",
            extra={
                "request_id": request_id,
                "aggregate_confidence": aggregate,
                "failed_tools": failed_tools,
                "llm_calls": tracker.llm_calls,
                "duration_ms": duration_ms,
            },
        )

        if cache_key is not None and not failed_tools:
            self._cache_put(cache_key, composite)
        return composite

    async def analyze_batch(
        self,
        requests: list[AnalysisRequest],
        enabled_dimensions: list[str] | None = None,
        mode: ExecutionMode | str | None = None,
    ) -> list[CompositeResult]:
        """Analyze several requests, at most ``batch_concurrency`` at a time, in input order."""
        semaphore = self._get_batch_semaphore()

        async def _run(request: AnalysisRequest) -> CompositeResult:
            async with semaphore:
                return await self.analyze(request, enabled_dimensions, mode)

        return list(await asyncio.gather(*(_run(request) for request in requests)))

    async def aclose(self) -> None:
        await self.llm.aclose()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _run_parallel(
        self,
        request: AnalysisRequest,
        dimensions: list[str],
        sql_info: SQLInfo,
        tracker: CallTracker,
    ) -> tuple[dict[str, ToolResult], bool]:
        tasks = {
            name: asyncio.create_task(
                self._run_tool(name, request, sql_info, tracker), name=f"analysis.{name}"
            )
            for name in dimensions
        }
        try:
            done, pending = await asyncio.wait(
                tasks.values(), timeout=self.config.overall_timeout
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Analysis timed out, using default results for unfinished tools",
                extra={
                    "timeout": self.config.overall_timeout,
                    "unfinished": [name for name, task in tasks.items() if task in pending],
                },
            )

        results: dict[str, ToolResult] = {}
        for name, task in tasks.items():
            if task in pending:
                results[name] = self._default_for(
                    name,
                    TimeoutError(
                        f"Analysis '{name}' timed out after {self.config.overall_timeout}s"
                    ),
                )
            elif task.cancelled():
                results[name] = self._default_for(
                    name, RuntimeError(f"Analysis '{name}' was cancelled")
                )
            elif task.exception() is not None:
                results[name] = self._default_for(name, task.exception())
            else:
                results[name] = task.result()
        return results, bool(pending)

    async def _run_sequential(
        self,
        request: AnalysisRequest,
        dimensions: list[str],
        sql_info: SQLInfo,
        tracker: CallTracker,
    ) -> dict[str, ToolResult]:
        results: dict[str, ToolResult] = {}
        for name in dimensions:
            results[name] = await self._run_tool(name, request, sql_info, tracker)
        return results

    async def _run_tool(
        self,
        name: str,
        request: AnalysisRequest,
        sql_info: SQLInfo,
        tracker: CallTracker,
    ) -> ToolResult:
        tool = self.tools[name]
        attempts = 0

        async def _attempt(signal) -> ToolResult:
            nonlocal attempts
            attempts += 1
            return await tool.run(request, signal, sql_info=sql_info, tracker=tracker)

        try:
            result = await self.executor.execute(
                _attempt,
                operation_name=f"analysis.{name}",
                timeout=self.config.tool_timeout,
                max_retries=self.config.tool_max_retries,
                retry_delay=self.config.tool_retry_delay,
                circuit_breaker=self._breaker(),
            )
        except ResilienceError as exc:
            logger.warning(
                f"Tool {name} failed, using default result",
                extra={
                    "tool": name,
                    "kind": exc.classification.kind.value,
                    "attempts": exc.record.attempts,
                    "error": exc.technical_message,
                },
            )
            return tool.default_result(
                error=exc.user_message,
                classification=exc.classification,
                attempts=exc.record.attempts,
                duration_ms=exc.record.duration_ms,
            )
        return result.model_copy(update={"attempts": attempts})

    def _default_for(self, name: str, error: BaseException) -> ToolResult:
        classification = self.executor.classifier.classify(error, {"tool": name})
        return self.tools[name].default_result(
            error=classification.user_message,
            classification=classification,
        )

    def _breaker(self) -> CircuitBreaker | None:
        if not self.config.circuit_breaker_enabled:
            return None
        return self.executor.registry.get_breaker(self.config.circuit_breaker_key)

    def _resolve_dimensions(self, enabled_dimensions: list[str] | None) -> list[str]:
        if enabled_dimensions is None:
            return list(self.variants)
        unknown = [name for name in enabled_dimensions if name not in self.variants]
        if unknown:
            raise AnalysisConfigError(
                f"Unknown analysis dimensions: {', '.join(unknown)}",
                context={"available": list(self.variants)},
            )
        dimensions = [name for name in self.variants if name in enabled_dimensions]
        if not dimensions:
            raise AnalysisConfigError(
                "No analysis dimension is enabled", context={"available": list(self.variants)}
            )
        return dimensions

    def _resolve_mode(self, mode: ExecutionMode | str | None) -> ExecutionMode:
        if mode is None:
            return (
                ExecutionMode.PARALLEL
                if self.config.parallel_execution
                else ExecutionMode.SEQUENTIAL
            )
        try:
            return ExecutionMode(mode)
        except ValueError as exc:
            raise AnalysisConfigError(f"Unknown execution mode: {mode}") from exc

    def _get_batch_semaphore(self) -> asyncio.Semaphore:
        if self._batch_semaphore is None:
            self._batch_semaphore = asyncio.Semaphore(self.config.batch_concurrency)
        return self._batch_semaphore

    @staticmethod
    def _cache_key(request: AnalysisRequest, dimensions: list[str]) -> str:
        payload = json.dumps(
            {
                "sql": request.sql.strip(),
                "database_type": request.database_type,
                "dimensions": sorted(dimensions),
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def _cache_get(self, key: str) -> CompositeResult | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, composite = entry
        if time.monotonic() - stored_at > self.config.cache_ttl:
            del self._cache[key]
            return None
        metadata = composite.metadata.model_copy(update={"cached": True})
        return composite.model_copy(update={"metadata": metadata}, deep=True)

    def _cache_put(self, key: str, composite: CompositeResult) -> None:
        now = time.monotonic()
        expired = [
            cached_key
            for cached_key, (stored_at, _) in self._cache.items()
            if now - stored_at > self.config.cache_ttl
        ]
        for cached_key in expired:
            del self._cache[cached_key]
        self._cache.pop(key, None)
        # Insertion order is storage order, so the first key is the oldest.
        while len(self._cache) >= self.config.cache_max_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (now, composite)


async def coordinate(
    request: AnalysisRequest,
    enabled_dimensions: list[str] | None = None,
    mode: ExecutionMode | str | None = None,
    coordinator: MultiAgentCoordinator | None = None,
) -> CompositeResult:
    """
    Analyze ``request`` with ``coordinator``, or with one built from settings.

    A coordinator built here owns its provider and closes it afterwards.
    """
    if coordinator is not None:
        return await coordinator.analyze(request, enabled_dimensions, mode)

    owned = MultiAgentCoordinator.from_settings()
    try:
        return await owned.analyze(request, enabled_dimensions, mode)
    finally:
        await owned.aclose()

