"""
Analysis Agents

Configuration-driven analysis tools and the coordinator that runs them.

Usage:
    from sql_analyzer.agents import coordinate
    from sql_analyzer.models import AnalysisRequest

    result = await coordinate(AnalysisRequest(sql="SELECT * FROM users"))
    print(result.aggregate_confidence)
"""

from sql_analyzer.agents.coordinator import MultiAgentCoordinator, coordinate
from sql_analyzer.agents.tools import (
    DIMENSIONS,
    TOOL_VARIANTS,
    AnalysisTool,
    CallTracker,
    ToolVariant,
    inspect_sql,
)

__all__ = [
    "DIMENSIONS",
    "TOOL_VARIANTS",
    "AnalysisTool",
    "CallTracker",
    "MultiAgentCoordinator",
    "ToolVariant",
    "coordinate",
    "inspect_sql",
]
