"""
Insight generator payload parsing.

The generator's response is untrusted: it may be a dict or text, the text
may be fenced Markdown or wrapped in prose, and individual dashboard views
may be malformed. Malformed views are dropped one by one; only a response
with no JSON object at all aborts the analysis.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from insight_weaver.core.errors import InvalidPayloadError
from insight_weaver.core.schemas import CandidateChartSpec, InsightPayload

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r'```(?:json|JSON)?\s*\n?([\s\S]*?)```')

VIEW_KEYS = ('dashboardViews', 'dashboard_views', 'views', 'charts')
SUMMARY_KEYS = ('dataSummary', 'data_summary', 'summary')
TEXT_KEYS = ('text', 'insight', 'description', 'title')

TEMPORAL_CLAIM = re.compile(
    r'\b(?:over time|trend(?:s|ing|ed)?|month[- ]over[- ]month|year[- ]over[- ]year|'
    r'week[- ]over[- ]week|quarter[- ]over[- ]quarter|seasonal(?:ity)?|'
    r'(?:increas|decreas|grow|declin)(?:ed|ing) (?:steadily|over|since|each)|'
    r'yoy|mom)\b',
    re.IGNORECASE,
)


def _outer_object(text: str) -> Optional[str]:
    """Slice from the first '{' to its matching '}', ignoring braces inside strings."""
    start = text.find('{')
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for position in range(start, len(text)):
        char = text[position]
        if escape:
            escape = False
        elif char == '\\' and in_string:
            escape = True
        elif char == '"':
            in_string = not in_string
        elif not in_string:
            if char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return text[start:position + 1]
    return None


def load_payload_object(raw: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Turn the generator response into a JSON object.

    Raises:
        InvalidPayloadError: no JSON object can be recovered.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidPayloadError("The insight response is empty")

    fence = CODE_FENCE.search(raw)
    text = fence.group(1) if fence else raw
    body = _outer_object(text)
    if body is None:
        raise InvalidPayloadError("The insight response contains no JSON object")

    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidPayloadError(f"The insight response is not valid JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise InvalidPayloadError("The insight response is not a JSON object")
    return parsed


def _first_present(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _text_list(value: Any) -> List[str]:
    """Free-text entries as strings; dict entries contribute their text field."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    texts: List[str] = []
    for item in value:
        if isinstance(item, dict):
            item = _first_present(item, TEXT_KEYS)
        if isinstance(item, str) and item.strip():
            texts.append(item.strip())
    return texts


def parse_insight_payload(raw: Union[str, Dict[str, Any]]) -> InsightPayload:
    """
    Parse the generator response into an InsightPayload.

    Raises:
        InvalidPayloadError: the response is not a JSON object.
    """
    data = load_payload_object(raw)

    raw_views = _first_present(data, VIEW_KEYS)
    if raw_views is None:
        raw_views = []
    elif not isinstance(raw_views, list):
        raw_views = [raw_views]

    views: List[CandidateChartSpec] = []
    malformed = 0
    for position, entry in enumerate(raw_views):
        try:
            views.append(CandidateChartSpec.model_validate(entry))
        except ValidationError as e:
            malformed += 1
            logger.warning(f"Dropped malformed dashboard view #{position}: {e.error_count()} validation error(s)")

    summary = _first_present(data, SUMMARY_KEYS)
    payload = InsightPayload(
        dashboard_views=views,
        insights=_text_list(data.get('insights')),
        patterns=_text_list(data.get('patterns')),
        data_summary=summary.strip() if isinstance(summary, str) else "",
        malformed_views=malformed,
    )
    logger.info(f"Parsed insight payload: {len(views)} candidate view(s), {malformed} malformed")
    return payload


def filter_temporal_claims(insights: List[str], has_date_column: bool) -> List[str]:
    """Drop insights that claim change over time when no column can support it."""
    if has_date_column:
        return list(insights)
    kept = [insight for insight in insights if not TEMPORAL_CLAIM.search(insight)]
    if len(kept) != len(insights):
        logger.info(f"Removed {len(insights) - len(kept)} insight(s) with unsupported temporal claims")
    return kept
