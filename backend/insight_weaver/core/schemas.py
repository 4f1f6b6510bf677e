from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from typing import List, Optional, Any, Dict, Union, Literal, Annotated

SemanticType = Literal['continuous', 'ordinal', 'categorical', 'text', 'boolean', 'date']
Aggregation = Literal['avg', 'sum', 'count', 'median', 'min', 'max']
AnalysisType = Literal['comparison', 'distribution', 'relationship', 'trend', 'correlation']
ChartType = Literal['bar', 'line', 'pie', 'scatter', 'area', 'table']


# --- Profiling -------------------------------------------------------------

class NumericStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    mean: float
    median: float
    std_dev: float  # population


class OutlierCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    zscore: int = 0  # beyond 3 population standard deviations
    iqr: int = 0  # beyond the 1.5×IQR fences


class ColumnProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    index: int
    semantic_type: SemanticType
    is_numeric: bool = False
    null_count: int
    unique_count: int
    sample_values: List[str] = []
    stats: Optional[NumericStats] = None
    outliers: Optional[OutlierCounts] = None
    ordered_levels: Optional[List[str]] = None  # rating scales, low to high


class ColumnSummary(BaseModel):
    name: str
    type: SemanticType
    null_count: int
    unique_count: int


class CleaningReport(BaseModel):
    total_rows: int
    cleaned_rows: int
    removed_rows: int
    nulls_handled: int
    duplicates_removed: int
    data_type_corrections: int
    outliers_flagged: int
    columns_analyzed: List[ColumnSummary]


class ColumnMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    semantic_type: SemanticType
    is_metric_variable: bool
    is_grouping_variable: bool
    allowed_aggregations: List[Aggregation]


# --- Validated intent ------------------------------------------------------

class MetricSpec(BaseModel):
    column: str
    aggregation: Aggregation
    display_name: str


class RelationshipVariables(BaseModel):
    independent: str
    dependent: str


class GroupedIntent(BaseModel):
    """Intent that partitions rows by one or more grouping columns."""
    analysis_type: Literal['comparison', 'distribution', 'trend']
    metric: MetricSpec
    group_by: List[str] = Field(min_length=1)
    chart_type: ChartType


class RelationshipIntent(BaseModel):
    """Intent that plots two numeric columns against each other, ungrouped."""
    analysis_type: Literal['relationship', 'correlation']
    metric: MetricSpec
    relationship_variables: RelationshipVariables
    group_by: List[str] = Field(default_factory=list, max_length=0)
    chart_type: ChartType


AnalyticalIntent = Annotated[
    Union[GroupedIntent, RelationshipIntent],
    Field(discriminator='analysis_type'),
]


# --- Untrusted generator input ---------------------------------------------

class PartialMetric(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    column: Optional[str] = None
    aggregation: Optional[str] = None
    display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('display_name', 'displayName')
    )


class PartialRelationship(BaseModel):
    model_config = ConfigDict(extra='ignore')

    independent: Optional[str] = None
    dependent: Optional[str] = None


class PartialIntent(BaseModel):
    """Whatever fragment of an intent the generator supplied."""
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    analysis_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('analysis_type', 'analysisType')
    )
    metric: Optional[PartialMetric] = None
    group_by: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices('group_by', 'groupBy')
    )
    relationship_variables: Optional[PartialRelationship] = Field(
        default=None,
        validation_alias=AliasChoices('relationship_variables', 'relationshipVariables'),
    )
    chart_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('chart_type', 'chartType')
    )

    @field_validator('group_by', mode='before')
    @classmethod
    def wrap_group_by(cls, v: Any) -> List[str]:
        """Accept a bare string and keep first occurrences only."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        ordered: List[str] = []
        for item in v:
            if isinstance(item, str) and item.strip() and item.strip() not in ordered:
                ordered.append(item.strip())
        return ordered

    @field_validator('metric', mode='before')
    @classmethod
    def wrap_metric(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {'column': v}
        return v


class CandidateChartSpec(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    title: str = ""
    purpose: str = ""
    chart_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('chart_type', 'chartType')
    )
    variables: List[str] = []
    aggregation: Optional[str] = None
    analytical_intent: Optional[PartialIntent] = Field(
        default=None,
        validation_alias=AliasChoices('analytical_intent', 'analyticalIntent'),
    )

    @field_validator('title', 'purpose', mode='before')
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator('variables', mode='before')
    @classmethod
    def coerce_variables(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if item is not None and str(item).strip()]


class InsightPayload(BaseModel):
    dashboard_views: List[CandidateChartSpec] = []
    insights: List[str] = []
    patterns: List[str] = []
    data_summary: str = ""
    malformed_views: int = 0


# --- Aggregated output -----------------------------------------------------

class ConfidenceInterval(BaseModel):
    lower: float
    upper: float
    level: float = 0.95


class OutlierInfo(BaseModel):
    count: int
    percentage: float
    lower_fence: float
    upper_fence: float
    warning: Optional[str] = None


class AggregatedPoint(BaseModel):
    label: str
    full_label: str
    value: float
    sample_count: int
    median: Optional[float] = None
    confidence_interval: Optional[ConfidenceInterval] = None
    skewness: Optional[float] = None
    skewness_warning: Optional[str] = None
    recommend_median: bool = False
    outlier_info: Optional[OutlierInfo] = None


class RawPoint(BaseModel):
    x: float
    y: float


class AxisLabels(BaseModel):
    x: str
    y: str


class ChartDataset(BaseModel):
    title: str
    purpose: str = ""
    chart_type: ChartType
    variables: List[str]
    analytical_intent: AnalyticalIntent
    axis_labels: AxisLabels
    points: List[AggregatedPoint] = []
    raw_points: List[RawPoint] = []
    corrections: List[str] = []
    source: Literal['candidate', 'fallback'] = 'candidate'


class DiscardedCandidate(BaseModel):
    title: str
    stage: str
    reason: str


class AnalysisResult(BaseModel):
    perspective: str
    dataset_hash: str
    views: List[ChartDataset]
    discarded: List[DiscardedCandidate] = []
    malformed_views: int = 0
    cleaning_report: CleaningReport
    column_metadata: List[ColumnMetadata]
    insights: List[str] = []
    patterns: List[str] = []
    data_summary: str = ""
    warning: Optional[str] = None


# --- HTTP ------------------------------------------------------------------

class AnalyzeRequest(BaseModel):
    data: List[List[Optional[Union[str, int, float, bool]]]]
    perspective: str = "general"
    insights_response: Union[str, Dict[str, Any]]

    @field_validator('perspective')
    @classmethod
    def default_perspective(cls, v: str) -> str:
        return v.strip() or "general"
