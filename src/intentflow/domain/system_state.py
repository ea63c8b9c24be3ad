"""System-state snapshot consumed by the evolution trigger evaluator.

Snapshots arrive as camelCase JSON (assessment reports, usage exports), so
the models accept both the wire aliases and the Python field names.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DocumentStats(_Snapshot):
    """Aggregate facts about the documentation tree."""

    total_documents: int = Field(default=0, alias="totalDocuments")
    average_size: float = Field(default=0.0, alias="averageSize")
    oldest_document: datetime | None = Field(default=None, alias="oldestDocument")
    newest_document: datetime | None = Field(default=None, alias="newestDocument")
    documents_by_category: dict[str, int] = Field(
        default_factory=dict, alias="documentsByCategory"
    )
    # Relative paths older than the freshness window
    stale_documents: list[str] = Field(default_factory=list, alias="staleDocuments")


class UsagePatterns(_Snapshot):
    popular_documents: list[str] = Field(default_factory=list, alias="popularDocuments")
    least_accessed: list[str] = Field(default_factory=list, alias="leastAccessed")
    search_patterns: list[str] = Field(default_factory=list, alias="searchPatterns")


class AssessmentResults(_Snapshot):
    average_score: float = Field(default=75.0, alias="averageScore")
    needs_improvement: list[str] = Field(default_factory=list, alias="needsImprovement")


class SystemState(_Snapshot):
    """Snapshot of metrics, assessment scores and usage patterns."""

    document_stats: DocumentStats = Field(default_factory=DocumentStats, alias="documentStats")
    usage_patterns: UsagePatterns = Field(default_factory=UsagePatterns, alias="usagePatterns")
    assessment_results: AssessmentResults = Field(
        default_factory=AssessmentResults, alias="assessmentResults"
    )
    # Health dimension -> score in [0, 100]
    system_health: dict[str, float] = Field(default_factory=dict, alias="systemHealth")
