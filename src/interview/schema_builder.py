"""
Evaluation schema builder.

==============================================================================
CONFIGURABLE EVALUATION SHAPE (Feature: configurable-scoring)
==============================================================================
The evaluator's output shape is not fixed in code. It is built at call time
from a settings snapshot:

- every ScoringFactor becomes a required key of the `subscores` object
- every enabled OutputOption becomes a required top-level property

The schema is closed-world (additionalProperties: false everywhere) so a
structured-output model cannot add fields. Whatever comes back is still run
through reconcile(), which fills defaults and drops anything malformed before
an Evaluation is built.
==============================================================================
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Union

from .errors import EvaluatorError
from .models import (
    Evaluation, EvidenceItem, OutputOption, ScoringFactor, Settings, StopTiming, ValueType,
)

logger = logging.getLogger(__name__)

FAILURE_WEAKNESS = "Evaluation failed: the evaluator did not return a usable result"

# Options with a shape that does not depend on their declared value type
OVERALL_SCORE = "overallScore"
STOP_TIMING = "stopTiming"
EVIDENCE = "evidence"
# Options stored on dedicated Evaluation list fields
LIST_FIELDS = {
    "strengths": "strengths",
    "weaknesses": "weaknesses",
    "actionableSuggestions": "actionable_suggestions",
}


def extract_json(text: str) -> dict:
    """Extract a JSON object from LLM output that may contain extra text.

    Handles clean JSON, markdown code fences, <think>...</think> blocks and
    prose around a single JSON object.
    """
    text = text.strip()
    text = re.sub(r'<think>.*?</think>', '', text, flags=re.DOTALL).strip()
    text = re.sub(r'<think>.*', '', text, flags=re.DOTALL).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fence_match = re.search(r'```(?:json)?\s*\n?(.*?)\n?\s*```', text, re.DOTALL)
    if fence_match:
        try:
            return json.loads(fence_match.group(1).strip())
        except json.JSONDecodeError:
            pass

    brace_match = re.search(r'\{.*\}', text, re.DOTALL)
    if brace_match:
        try:
            return json.loads(brace_match.group(0))
        except json.JSONDecodeError:
            pass

    raise json.JSONDecodeError("No valid JSON found in LLM output", text, 0)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


class EvaluationSchemaBuilder:
    """Builds the evaluator schema for one settings snapshot and reconciles payloads against it."""

    def __init__(self, factors: List[ScoringFactor], options: List[OutputOption]):
        self._check_unique([f.name for f in factors], "scoring factor")
        self._check_unique([o.name for o in options], "output option")
        if "subscores" in {o.name for o in options}:
            raise ValueError("'subscores' is reserved and cannot be an output option")
        self.factors = list(factors)
        self.options = [o for o in options if o.enabled]

    @classmethod
    def from_settings(cls, settings: Settings) -> "EvaluationSchemaBuilder":
        return cls(settings.scoring_factors, settings.output_options)

    @staticmethod
    def _check_unique(names: List[str], what: str) -> None:
        seen = set()
        for name in names:
            if name in seen:
                raise ValueError(f"Duplicate {what} name: {name}")
            seen.add(name)

    @property
    def factor_names(self) -> List[str]:
        return [f.name for f in self.factors]

    # ===== Schema =====

    def _evidence_schema(self) -> Dict[str, Any]:
        category: Dict[str, Any] = {"type": "string"}
        if self.factors:
            category["enum"] = self.factor_names
        return {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "quote": {"type": "string", "description": "Short verbatim quote from the transcript"},
                    "note": {"type": "string", "description": "Why the quote matters"},
                    "category": category,
                },
                "required": ["quote", "note", "category"],
                "additionalProperties": False,
            },
        }

    def _option_schema(self, option: OutputOption) -> Dict[str, Any]:
        if option.name == OVERALL_SCORE:
            schema = {"type": "number"}
        elif option.name == STOP_TIMING:
            schema = {"type": "string", "enum": [t.value for t in StopTiming]}
        elif option.name == EVIDENCE:
            schema = self._evidence_schema()
        elif option.name in LIST_FIELDS or option.value_type == ValueType.string_array:
            schema = {"type": "array", "items": {"type": "string"}}
        elif option.value_type == ValueType.number:
            schema = {"type": "number"}
        elif option.value_type == ValueType.object_array:
            schema = {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"label": {"type": "string"}, "detail": {"type": "string"}},
                    "required": ["label", "detail"],
                    "additionalProperties": False,
                },
            }
        else:
            schema = {"type": "string"}
        if option.description:
            schema["description"] = option.description
        return schema

    def build_schema(self) -> Dict[str, Any]:
        subscores = {
            "type": "object",
            "properties": {
                f.name: {
                    "type": "number",
                    "description": f"{f.description} ({f.min_score:g}-{f.max_score:g})".strip(),
                }
                for f in self.factors
            },
            "required": self.factor_names,
            "additionalProperties": False,
        }
        properties: Dict[str, Any] = {"subscores": subscores}
        for option in self.options:
            properties[option.name] = self._option_schema(option)
        return {
            "type": "object",
            "properties": properties,
            "required": list(properties),
            "additionalProperties": False,
        }

    def response_format(self) -> Dict[str, Any]:
        """OpenAI structured-output wrapper around build_schema()."""
        return {
            "type": "json_schema",
            "json_schema": {"name": "interview_evaluation", "strict": True, "schema": self.build_schema()},
        }

    # ===== Reconciliation =====

    def _parse(self, payload: Union[dict, str, bytes, None]) -> dict:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        if isinstance(payload, str):
            try:
                payload = extract_json(payload)
            except json.JSONDecodeError as e:
                raise EvaluatorError(f"Evaluator returned unparseable output: {e}") from e
        if not isinstance(payload, dict):
            raise EvaluatorError(f"Evaluator returned {type(payload).__name__}, expected an object")
        return payload

    def _subscores(self, raw: Any) -> Dict[str, float]:
        raw = raw if isinstance(raw, dict) else {}
        scores = {}
        for factor in self.factors:
            value = raw.get(factor.name)
            scores[factor.name] = _clamp(float(value), factor.min_score, factor.max_score) if _is_number(value) else 0
        return scores

    @staticmethod
    def _evidence(raw: Any) -> List[EvidenceItem]:
        items = []
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict):
                continue
            fields = {k: item.get(k) for k in ("quote", "note", "category")}
            if all(isinstance(v, str) for v in fields.values()):
                items.append(EvidenceItem(**fields))
        return items

    @staticmethod
    def _custom_value(option: OutputOption, value: Any) -> Any:
        if option.value_type == ValueType.number:
            return float(value) if _is_number(value) else 0
        if option.value_type == ValueType.string_array:
            return _string_list(value)
        if option.value_type == ValueType.object_array:
            if not isinstance(value, list):
                return []
            return [
                {"label": item["label"], "detail": item["detail"]}
                for item in value
                if isinstance(item, dict) and isinstance(item.get("label"), str) and isinstance(item.get("detail"), str)
            ]
        return value if isinstance(value, str) else ""

    def reconcile(self, payload: Union[dict, str, bytes, None]) -> Evaluation:
        """Turn whatever the evaluator returned into a complete Evaluation.

        Missing subscores become 0, present ones are clamped into their factor
        range. Missing timing becomes "appropriate", missing lists become [].
        Keys that are not configured are dropped.

        Raises:
            EvaluatorError: the payload is not a JSON object at all
        """
        data = self._parse(payload)
        evaluation = Evaluation(subscores=self._subscores(data.get("subscores")))

        for option in self.options:
            value = data.get(option.name)
            if option.name == OVERALL_SCORE:
                evaluation.overall_score = _clamp(float(value), 0, 100) if _is_number(value) else 0
            elif option.name == STOP_TIMING:
                timings = {t.value for t in StopTiming}
                evaluation.stop_timing = StopTiming(value) if isinstance(value, str) and value in timings else StopTiming.appropriate
            elif option.name == EVIDENCE:
                evaluation.evidence = self._evidence(value)
            elif option.name in LIST_FIELDS:
                setattr(evaluation, LIST_FIELDS[option.name], _string_list(value))
            else:
                evaluation.custom_fields[option.name] = self._custom_value(option, value)
        return evaluation

    def failure_evaluation(self, reason: Optional[str] = None) -> Evaluation:
        """Deterministic evaluation used when the evaluator call fails."""
        if reason:
            logger.error(f"Using failure evaluation: {reason}")
        return Evaluation(
            overall_score=0,
            subscores={name: 0 for name in self.factor_names},
            weaknesses=[FAILURE_WEAKNESS],
            stop_timing=StopTiming.appropriate,
        )
