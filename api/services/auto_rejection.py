"""
Auto-rejection rules.

A job may carry rules such as ``{"enabled": true, "rules": [{"field":
"experience", "operator": "less_than", "value": 3, "logic_connector":
"OR"}]}``. New applications that match are moved straight to the job's
Rejected stage.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services import stage_history
from database.models.candidates import ActivityType, Candidate, CandidateActivity, JobCandidate
from database.models.pipelines import PipelineStage

logger = logging.getLogger(__name__)

REJECTED_STAGE_NAME = "Rejected"

NUMERIC_OPERATORS = ("less_than", "greater_than", "equals", "not_equals", "between")
TEXT_OPERATORS = ("equals", "not_equals", "contains", "not_contains")
LIST_OPERATORS = ("contains", "not_contains", "contains_all", "contains_any")

# field -> allowed operators
RULE_FIELDS = {
    "experience": NUMERIC_OPERATORS,
    "salary_expectation": NUMERIC_OPERATORS,
    "location": TEXT_OPERATORS,
    "skills": LIST_OPERATORS,
}

FIELD_LABELS = {
    "experience": "Experience",
    "salary_expectation": "Salary Expectation",
    "location": "Location",
    "skills": "Skills",
}

OPERATOR_LABELS = {
    "less_than": "less than",
    "greater_than": "greater than",
    "equals": "equal to",
    "not_equals": "not equal to",
    "between": "between",
    "contains": "containing",
    "not_contains": "not containing",
    "contains_all": "containing all of",
    "contains_any": "containing any of",
}


@dataclass
class AutoRejectionResult:
    should_reject: bool
    reason: Optional[str] = None
    triggered_rule: Optional[Dict[str, Any]] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_auto_rejection_rules(rules: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Field errors for an auto-rejection rule set; empty when valid."""
    if rules is None:
        return {}
    if not isinstance(rules, dict) or not isinstance(rules.get("enabled"), bool):
        return {"auto_rejection_rules": ["enabled must be a boolean"]}
    if not rules["enabled"]:
        return {}

    items = rules.get("rules")
    if not isinstance(items, list):
        return {"auto_rejection_rules": ["rules must be a list when enabled"]}

    errors: Dict[str, List[str]] = {}
    for index, rule in enumerate(items):
        key = f"auto_rejection_rules.rules.{index}"
        if not isinstance(rule, dict):
            errors[key] = ["Rule must be an object"]
            continue

        field, operator, value = rule.get("field"), rule.get("operator"), rule.get("value")
        if field not in RULE_FIELDS:
            errors[key] = [f"Field must be one of: {', '.join(RULE_FIELDS)}"]
            continue
        if operator not in RULE_FIELDS[field]:
            errors[key] = [f"Operator for {field} must be one of: {', '.join(RULE_FIELDS[field])}"]
            continue
        if rule.get("logic_connector", "OR") not in ("AND", "OR"):
            errors[key] = ["logic_connector must be AND or OR"]
            continue

        if operator == "between":
            valid = (
                isinstance(value, list) and len(value) == 2
                and all(_is_number(v) for v in value) and value[0] <= value[1]
            )
            if not valid:
                errors[key] = ["between needs a [min, max] pair of numbers"]
        elif RULE_FIELDS[field] is NUMERIC_OPERATORS:
            if not _is_number(value):
                errors[key] = ["Value must be a number"]
        elif field == "skills":
            if not (isinstance(value, str) or (isinstance(value, list) and all(isinstance(v, str) for v in value))):
                errors[key] = ["Value must be a string or a list of strings"]
        elif not isinstance(value, str) or not value.strip():
            errors[key] = ["Value must be a non-empty string"]

    return errors


def parse_salary(value: Optional[str]) -> Optional[float]:
    """First number in a free-text salary such as ``"12.5 LPA"`` or ``"150,000"``."""
    if not value:
        return None
    match = re.search(r"\d[\d,]*(?:\.\d+)?", value)
    return float(match.group().replace(",", "")) if match else None


def candidate_rule_data(candidate: Candidate) -> Dict[str, Any]:
    return {
        "experience": candidate.experience_years,
        "salary_expectation": parse_salary(candidate.expected_ctc),
        "location": candidate.location,
        "skills": candidate.skills or [],
    }


def _matches(candidate_value: Any, operator: str, rule_value: Any) -> bool:
    # Missing candidate data never triggers a rejection
    if candidate_value is None:
        return False

    if isinstance(candidate_value, list):
        have = {v.lower().strip() for v in candidate_value}
        wanted = [v.lower().strip() for v in (rule_value if isinstance(rule_value, list) else [rule_value])]
        if operator == "not_contains":
            return not any(w in have for w in wanted)
        if operator == "contains_all":
            return all(w in have for w in wanted)
        return any(w in have for w in wanted)

    if isinstance(candidate_value, str):
        text, term = candidate_value.lower().strip(), str(rule_value).lower().strip()
        return {
            "equals": text == term,
            "not_equals": text != term,
            "contains": term in text,
            "not_contains": term not in text,
        }.get(operator, False)

    if operator == "between":
        low, high = rule_value
        return low <= candidate_value <= high
    return {
        "less_than": candidate_value < rule_value,
        "greater_than": candidate_value > rule_value,
        "equals": candidate_value == rule_value,
        "not_equals": candidate_value != rule_value,
    }.get(operator, False)


def _display(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def rejection_reason(candidate: Dict[str, Any], rule: Dict[str, Any]) -> str:
    field, operator, value = rule["field"], rule["operator"], rule["value"]
    unit = " years" if field == "experience" else ""

    if operator == "between":
        required = f"{_display(value[0])} and {_display(value[1])}"
    elif isinstance(value, list):
        required = ", ".join(value)
    else:
        required = _display(value)

    actual = candidate.get(field)
    if isinstance(actual, list):
        actual = ", ".join(actual) or "none"
    elif actual is None:
        actual = "not specified"
    else:
        actual = _display(actual)

    return (
        f"Auto-rejected: {FIELD_LABELS[field]} ({actual}{unit}) is "
        f"{OPERATOR_LABELS[operator]} required ({required}{unit})"
    )


def evaluate_auto_rejection(
    candidate: Dict[str, Any],
    rules: Optional[Dict[str, Any]],
) -> AutoRejectionResult:
    """
    Evaluate rules left to right.

    Each rule's ``logic_connector`` (default OR) joins it to the next rule.
    The reason names the first rule that matched.
    """
    if not rules or not rules.get("enabled") or not rules.get("rules"):
        return AutoRejectionResult(should_reject=False)

    result = False
    triggered = None
    connector = None
    for rule in rules["rules"]:
        matched = _matches(candidate.get(rule["field"]), rule["operator"], rule["value"])
        if connector is None:
            result = matched
        elif connector == "AND":
            result = result and matched
        else:
            result = result or matched
        if matched and result and triggered is None:
            triggered = rule
        connector = rule.get("logic_connector") or "OR"

    if result and triggered:
        return AutoRejectionResult(
            should_reject=True,
            reason=rejection_reason(candidate, triggered),
            triggered_rule=triggered,
        )
    return AutoRejectionResult(should_reject=False)


async def apply_auto_rejection(
    session: AsyncSession,
    job_candidate: JobCandidate,
    candidate: Candidate,
    rules: Optional[Dict[str, Any]],
    from_stage: PipelineStage,
    user_id: Optional[int] = None,
) -> Optional[PipelineStage]:
    """
    Move a new application to Rejected when the job's rules match.

    Runs inside the caller's transaction. Returns the Rejected stage when
    the candidate was rejected, otherwise None.
    """
    evaluation = evaluate_auto_rejection(candidate_rule_data(candidate), rules)
    if not evaluation.should_reject:
        return None

    rejected = (await session.execute(
        select(PipelineStage).where(
            PipelineStage.job_id == job_candidate.job_id,
            PipelineStage.parent_id.is_(None),
            PipelineStage.name == REJECTED_STAGE_NAME,
        )
    )).scalars().first()
    if not rejected:
        logger.warning(f"Job {job_candidate.job_id} has no Rejected stage, skipping auto-rejection")
        return None

    await stage_history.close_stage_entry(session, job_candidate.id, from_stage.id)
    await stage_history.create_stage_entry(
        session, job_candidate.id, rejected.id, rejected.name,
        comment=evaluation.reason, moved_by=user_id,
    )
    job_candidate.current_stage_id = rejected.id

    session.add(CandidateActivity(
        candidate_id=candidate.id,
        job_candidate_id=job_candidate.id,
        activity_type=ActivityType.STAGE_CHANGE,
        description=evaluation.reason,
        activity_metadata={
            "from_stage_name": from_stage.name,
            "to_stage_name": rejected.name,
            "to_stage_id": rejected.id,
            "auto_rejected": True,
            "rejection_reason": evaluation.reason,
            "triggered_rule": evaluation.triggered_rule,
        },
        created_by=user_id,
    ))
    await session.flush()

    logger.info(f"Application {job_candidate.id} auto-rejected: {evaluation.reason}")
    return rejected
