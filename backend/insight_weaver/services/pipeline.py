"""
Analysis pipeline.

Orchestrates one analysis: every candidate from the generator is validated,
bound, titled, aggregated and checked on its own, and a failure only ever
drops that candidate. AnalysisService adds the content-addressed cache and
the single await on the insight source in front of the synchronous pipeline.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union

from insight_weaver.core.cache import (
    CacheStore,
    dataset_content_hash,
    generate_analysis_cache_key,
    response_fingerprint,
)
from insight_weaver.core.config import Settings, get_settings
from insight_weaver.core.errors import CandidateRejected, StructuralValidationError
from insight_weaver.core.performance import track_performance
from insight_weaver.core.sanitization import sanitize_for_logging
from insight_weaver.core.schemas import (
    AnalysisResult,
    CandidateChartSpec,
    ChartDataset,
    DiscardedCandidate,
    GroupedIntent,
    InsightPayload,
    MetricSpec,
    RelationshipIntent,
    RelationshipVariables,
)
from insight_weaver.services.aggregation import build_chart_data
from insight_weaver.services.binding import (
    BindingContext,
    bind_relationship,
    resolve_display_name,
    resolve_metric,
)
from insight_weaver.services.fallback import build_fallback_candidates, candidate_signature
from insight_weaver.services.intent import extract_intent, validate_intent
from insight_weaver.services.metadata import ColumnIndex
from insight_weaver.services.payload import filter_temporal_claims, parse_insight_payload
from insight_weaver.services.profiler import CleanedDataset, clean_dataset
from insight_weaver.services.titles import derive_axis_labels, synthesize_title
from insight_weaver.services.validator import intent_variables, validate_structure

logger = logging.getLogger(__name__)

NO_VIEWS_WARNING = "No visualizations could be generated for this dataset."
UNTITLED = "(untitled)"


def process_candidate(
    candidate: CandidateChartSpec,
    dataset: CleanedDataset,
    index: ColumnIndex,
    settings: Optional[Settings] = None,
    source: str = "candidate",
) -> ChartDataset:
    """
    Turn one untrusted candidate into a render-ready chart.

    Raises:
        CandidateRejected: the candidate is dropped (validation, binding,
            degenerate aggregation or structural failure).
    """
    settings = settings or get_settings()
    draft = validate_intent(extract_intent(candidate, index), candidate, index)
    ctx = BindingContext(
        intent=draft,
        title=candidate.title,
        purpose=candidate.purpose,
        variables=tuple(candidate.variables),
        index=index,
    )

    if draft.is_relationship:
        binding = bind_relationship(ctx)
    else:
        binding = resolve_metric(ctx)
        if binding is None:
            raise CandidateRejected("no metric-capable column and no count fallback", stage="metric_binding")

    corrections = list(draft.corrections)
    if draft.requested_aggregation and binding.aggregation != draft.requested_aggregation and not draft.is_relationship:
        corrections.append(
            f"Aggregation '{draft.requested_aggregation}' replaced by '{binding.aggregation}' "
            f"for {binding.column}"
        )

    metric = MetricSpec(
        column=binding.column,
        aggregation=binding.aggregation,
        display_name=resolve_display_name(ctx, binding),
    )
    if draft.is_relationship:
        intent: Union[GroupedIntent, RelationshipIntent] = RelationshipIntent(
            analysis_type=draft.analysis_type,
            metric=metric,
            relationship_variables=RelationshipVariables(
                independent=draft.relationship[0],
                dependent=draft.relationship[1],
            ),
            chart_type=draft.chart_type,
        )
    else:
        intent = GroupedIntent(
            analysis_type=draft.analysis_type,
            metric=metric,
            group_by=draft.group_by,
            chart_type=draft.chart_type,
        )

    for correction in corrections:
        logger.info(f"Correction on '{sanitize_for_logging(candidate.title)}': {correction}")

    points, raw_points = build_chart_data(intent, dataset, settings)
    chart = ChartDataset(
        title=synthesize_title(intent),
        purpose=candidate.purpose,
        chart_type=intent.chart_type,
        variables=intent_variables(intent),
        analytical_intent=intent,
        axis_labels=derive_axis_labels(intent),
        points=points,
        raw_points=raw_points,
        corrections=corrections,
        source=source,
    )
    return validate_structure(chart, index)


class _ViewCollector:
    """Accumulates render-ready views and discards for one pipeline run."""

    def __init__(self, dataset: CleanedDataset, index: ColumnIndex, settings: Settings):
        self.dataset = dataset
        self.index = index
        self.settings = settings
        self.views: List[ChartDataset] = []
        self.discarded: List[DiscardedCandidate] = []
        self._seen: Set[Tuple[str, str]] = set()

    def consider(self, candidate: CandidateChartSpec, source: str) -> Optional[ChartDataset]:
        title = candidate.title or UNTITLED
        try:
            chart = process_candidate(candidate, self.dataset, self.index, self.settings, source)
        except CandidateRejected as e:
            if source == "candidate":
                self.discarded.append(DiscardedCandidate(title=title, stage=e.stage, reason=e.message))
            # Structural failures are already logged at ERROR by the validator
            if not isinstance(e, StructuralValidationError):
                log = logger.warning if source == "candidate" else logger.debug
                log(f"Discarded {source} '{sanitize_for_logging(title)}' at {e.stage}: {e.message}")
            return None

        key = (chart.title, chart.chart_type)
        if key in self._seen:
            if source == "candidate":
                self.discarded.append(DiscardedCandidate(
                    title=title,
                    stage="duplicate",
                    reason=f"duplicates the {chart.chart_type} chart '{chart.title}'",
                ))
                logger.warning(f"Discarded duplicate '{sanitize_for_logging(title)}'")
            return None

        self._seen.add(key)
        self.views.append(chart)
        return chart


@track_performance("run_pipeline")
def run_pipeline(
    dataset: CleanedDataset,
    payload: InsightPayload,
    settings: Optional[Settings] = None,
    perspective: str = "general",
    dataset_hash: str = "",
) -> AnalysisResult:
    """Run every candidate through the pipeline, topping up with fallback views if needed."""
    settings = settings or get_settings()
    index = ColumnIndex(dataset.profiles)
    collector = _ViewCollector(dataset, index, settings)

    for candidate in payload.dashboard_views:
        collector.consider(candidate, "candidate")

    if len(collector.views) < settings.min_dashboard_views:
        existing = {candidate_signature(view.chart_type, view.variables) for view in collector.views}
        for candidate in build_fallback_candidates(index, dataset.row_count, existing):
            if len(collector.views) >= settings.min_dashboard_views:
                break
            collector.consider(candidate, "fallback")

    views = collector.views
    warning = None
    if not views:
        warning = NO_VIEWS_WARNING
        logger.warning(NO_VIEWS_WARNING)

    logger.info(
        f"Pipeline produced {len(views)} view(s) from {len(payload.dashboard_views)} candidate(s); "
        f"{len(collector.discarded)} discarded"
    )
    return AnalysisResult(
        perspective=perspective,
        dataset_hash=dataset_hash,
        views=views,
        discarded=collector.discarded,
        malformed_views=payload.malformed_views,
        cleaning_report=dataset.report,
        column_metadata=index.all_metadata(),
        insights=filter_temporal_claims(payload.insights, index.has_date_column()),
        patterns=list(payload.patterns),
        data_summary=payload.data_summary,
        warning=warning,
    )


RawInsightResponse = Union[str, Dict[str, Any]]


class InsightSource(Protocol):
    """The external insight generator, awaited once per analysis."""

    async def fetch(self, dataset: CleanedDataset, perspective: str) -> RawInsightResponse:
        ...

    def fingerprint(self) -> Optional[str]:
        """Identity of the response when known before fetching; None keys on dataset and perspective only."""
        ...


class StaticInsightSource:
    """Insight source that returns a response the caller already holds."""

    def __init__(self, response: RawInsightResponse):
        self.response = response

    async def fetch(self, dataset: CleanedDataset, perspective: str) -> RawInsightResponse:
        return self.response

    def fingerprint(self) -> str:
        return response_fingerprint(self.response)


class AnalysisService:
    """Cached entry point: same dataset content, perspective and candidates are analyzed once."""

    def __init__(self, cache: CacheStore, settings: Optional[Settings] = None):
        self.cache = cache
        self.settings = settings or get_settings()

    @track_performance("analyze")
    async def analyze(
        self,
        rows: Sequence[Sequence[Any]],
        perspective: str,
        source: InsightSource,
        correlation_id: Optional[str] = None,
    ) -> AnalysisResult:
        perspective = perspective.strip() or "general"
        cache_key = generate_analysis_cache_key(rows, perspective, source.fingerprint())

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Analysis cache hit for perspective '{sanitize_for_logging(perspective)}'")
            return AnalysisResult.model_validate_json(cached)

        logger.info(
            f"Starting analysis: {len(rows)} row(s) including header, "
            f"perspective '{sanitize_for_logging(perspective)}'"
        )
        dataset = clean_dataset(rows, self.settings)
        raw_response = await source.fetch(dataset, perspective)
        payload = parse_insight_payload(raw_response)
        result = run_pipeline(
            dataset,
            payload,
            self.settings,
            perspective=perspective,
            dataset_hash=dataset_content_hash(rows),
        )

        self.cache.set(cache_key, result.model_dump_json(), ttl=self.settings.cache_ttl_seconds)
        return result
