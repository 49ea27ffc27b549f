"""
Analysis Tools

One configuration-driven AnalysisTool replaces per-dimension analyzer
classes. Each dimension is a ToolVariant row: prompt template, output model
and the default result used when the tool cannot produce one.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import sqlparse
from pydantic import ValidationError

from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.models import LLMRequest
from sql_analyzer.models.analysis import (
    AnalysisRequest,
    DimensionAnalysis,
    PerformanceAnalysis,
    SecurityAnalysis,
    StandardsAnalysis,
    ToolResult,
)
from sql_analyzer.models.errors import RepairError, ResponseDecodeError
from sql_analyzer.parsing.decoder import StructuredDecoder
from sql_analyzer.parsing.pipeline import recover_structured
from sql_analyzer.parsing.repairer import IntelligentRepairer
from sql_analyzer.prompts.loader import PromptLoader
from sql_analyzer.resilience.executor import CancellationSignal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolVariant:
    """Configuration of one analysis dimension."""

    name: str
    prompt_template: str
    output_model: type[DimensionAnalysis]
    default_result: dict[str, Any]
    category: str = "analysis"


def _default_result(summary: str, list_field: str, **extra: Any) -> dict[str, Any]:
    return {
        "summary": summary,
        "score": None,
        "confidence": 0.3,
        list_field: [],
        "recommendations": [
            "Automated analysis was unavailable; review this query manually",
        ],
        "metrics": {},
        "is_fallback": True,
        **extra,
    }


TOOL_VARIANTS: dict[str, ToolVariant] = {
    "performance": ToolVariant(
        name="performance",
        prompt_template="performance",
        output_model=PerformanceAnalysis,
        default_result=_default_result("Performance analysis unavailable", "issues"),
    ),
    "security": ToolVariant(
        name="security",
        prompt_template="security",
        output_model=SecurityAnalysis,
        default_result=_default_result(
            "Security analysis unavailable", "vulnerabilities", risk_level="unknown"
        ),
    ),
    "standards": ToolVariant(
        name="standards",
        prompt_template="standards",
        output_model=StandardsAnalysis,
        default_result=_default_result("Standards analysis unavailable", "violations"),
    ),
}

DIMENSIONS: tuple[str, ...] = tuple(TOOL_VARIANTS)


@dataclass(frozen=True)
class SQLInfo:
    """Statement facts passed to every prompt."""

    statement_type: str
    statement_count: int
    formatted_sql: str


def inspect_sql(sql: str) -> SQLInfo:
    """Detect the statement type and produce a normalized rendering with sqlparse."""
    statements = [stmt for stmt in sqlparse.parse(sql) if str(stmt).strip()]
    statement_type = statements[0].get_type() if statements else "UNKNOWN"
    formatted = sqlparse.format(sql, reindent=True, keyword_case="upper", strip_comments=False)
    return SQLInfo(
        statement_type=statement_type,
        statement_count=len(statements),
        formatted_sql=formatted.strip() or sql.strip(),
    )


@dataclass
class CallTracker:
    """Counts LLM calls and tool invocations for one composite analysis."""

    llm_calls: int = 0
    tool_calls: int = 0
    by_tool: dict[str, int] = field(default_factory=dict)

    def record(self, tool: str, llm_calls: int) -> None:
        self.tool_calls += 1
        self.llm_calls += llm_calls
        self.by_tool[tool] = self.by_tool.get(tool, 0) + llm_calls


class AnalysisTool:
    """
    Render prompt -> one LLM call -> recover structured output -> validate.

    Args:
        variant: Dimension configuration
        llm: Provider for the analysis call
        prompt_loader: Template loader
        repair_llm: Provider for repair calls (defaults to ``llm``)
        repair_enabled: Attempt an LLM repair when local decoding fails
        repair_options: Keyword arguments for IntelligentRepairer
        decoder: Structured decoder shared by analysis and repair
    """

    def __init__(
        self,
        variant: ToolVariant,
        llm: BaseLLMProvider,
        prompt_loader: PromptLoader | None = None,
        repair_llm: BaseLLMProvider | None = None,
        repair_enabled: bool = True,
        repair_options: dict[str, Any] | None = None,
        decoder: StructuredDecoder | None = None,
    ):
        self.variant = variant
        self.llm = llm
        self.prompt_loader = prompt_loader or PromptLoader()
        self.repair_llm = repair_llm or llm
        self.repair_enabled = repair_enabled
        self.repair_options = dict(repair_options or {})
        self.decoder = decoder or StructuredDecoder()

    @property
    def name(self) -> str:
        return self.variant.name

    def default_result(
        self,
        error: str | None = None,
        **fields: Any,
    ) -> ToolResult:
        """ToolResult carrying a copy of the variant's default data."""
        return ToolResult(
            tool=self.name,
            success=False,
            data=copy.deepcopy(self.variant.default_result),
            confidence=0.0,
            is_default=True,
            error=error,
            **fields,
        )

    async def run(
        self,
        request: AnalysisRequest,
        signal: CancellationSignal | None = None,
        sql_info: SQLInfo | None = None,
        tracker: CallTracker | None = None,
    ) -> ToolResult:
        """
        Run one analysis attempt.

        Raises:
            ResponseDecodeError: Output could not be decoded locally
            RepairError: Output could not be decoded after the repair call
            Exception: Provider errors propagate for classification
        """
        started = time.perf_counter()
        info = sql_info or inspect_sql(request.sql)
        prompts = self.prompt_loader.build(
            self.variant.prompt_template,
            {
                "sql": info.formatted_sql,
                "raw_sql": request.sql,
                "database_type": request.database_type,
                "statement_type": info.statement_type,
                "context": request.context,
            },
            category=self.variant.category,
        )
        llm_request = LLMRequest.from_prompts(prompts.system_prompt, prompts.user_prompt)

        repairer = (
            IntelligentRepairer(self.repair_llm, decoder=self.decoder, **self.repair_options)
            if self.repair_enabled
            else None
        )

        llm_calls = 1
        try:
            if signal is not None:
                signal.raise_if_cancelled()
            response = await self.llm.generate(llm_request)
            if signal is not None:
                signal.raise_if_cancelled()
            result = await recover_structured(response, repairer=repairer, decoder=self.decoder)
        finally:
            if repairer is not None:
                llm_calls += repairer.calls
            if tracker is not None:
                tracker.record(self.name, llm_calls)

        if not result.success:
            error_cls = RepairError if repairer is not None and repairer.calls else ResponseDecodeError
            raise error_cls(
                self.name,
                f"Could not decode {self.name} analysis: {result.error}",
                context={"attempted": [s.value for s in result.attempted]},
            )

        try:
            analysis = self.variant.output_model.model_validate(result.data)
        except ValidationError as exc:
            raise ResponseDecodeError(
                self.name,
                f"Decoded {self.name} analysis does not match its schema: {exc.error_count()} errors",
                context={"errors": exc.errors(include_url=False)},
            ) from exc

        duration_ms = (time.perf_counter() - started) * 1000
        confidence = round(min(analysis.confidence, result.confidence), 4)
        logger.info(
            f"Completed {self.name} analysis",
            extra={
                "tool": self.name,
                "strategy": result.strategy.value if result.strategy else None,
                "repaired": result.repaired,
                "confidence": confidence,
                "llm_calls": llm_calls,
                "duration_ms": duration_ms,
            },
        )
        return ToolResult(
            tool=self.name,
            success=True,
            data=analysis.model_dump(),
            confidence=confidence,
            strategy=result.strategy,
            repaired=result.repaired,
            duration_ms=duration_ms,
            attempts=1,
        )


def build_tools(
    llm: BaseLLMProvider,
    variants: dict[str, ToolVariant] | None = None,
    **tool_options: Any,
) -> dict[str, AnalysisTool]:
    """One AnalysisTool per variant, sharing provider and options."""
    return {
        name: AnalysisTool(variant, llm, **tool_options)
        for name, variant in (variants or TOOL_VARIANTS).items()
    }
