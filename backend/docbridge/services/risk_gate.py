"""Pre-dispatch size/complexity checks and the risky-pattern policy table."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable


LEVEL_OK = "ok"
LEVEL_WARN = "warn"
LEVEL_BLOCK = "block"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"

DEFAULT_MUTATION_VERBS = ("insert",)
_COMMENT_PREFIXES = ("//", "/*", "*")
_CHECKPOINT_RE = re.compile(r"context\.sync\(\)")
_SUCCESS_MARKER_RE = re.compile(r"return\s*\{[\s\S]*success[\s\S]*\}")
MAX_CHECKPOINT_CALLS = 3


@dataclass(frozen=True, slots=True)
class RiskRule:
    name: str
    pattern: re.Pattern[str]
    severity: str
    remediation: str


DEFAULT_RISK_POLICY: tuple[RiskRule, ...] = (
    RiskRule(
        name="body.clear()",
        pattern=re.compile(r"body\.clear\(\)"),
        severity=SEVERITY_HIGH,
        remediation="Do not clear the whole document; start from an empty document instead.",
    ),
    RiskRule(
        name='insertParagraph(..., "Start")',
        pattern=re.compile(r"insertParagraph\([^)]*,\s*[\"']Start[\"']\)"),
        severity=SEVERITY_HIGH,
        remediation='Append content in order with "End" instead of inserting at the document start.',
    ),
    RiskRule(
        name="insertField(toc)",
        pattern=re.compile(r"insertField\([^)]*FieldType\.toc", re.IGNORECASE),
        severity=SEVERITY_MEDIUM,
        remediation="Table-of-contents fields are unstable; build the contents list manually.",
    ),
    RiskRule(
        name="search().insert*()",
        pattern=re.compile(r"\.search\([^)]+\)\..*insert"),
        severity=SEVERITY_MEDIUM,
        remediation='Search-based positioning is unreliable; keep a reference and use insertParagraph("After").',
    ),
    RiskRule(
        name="shading.backgroundPatternColor",
        pattern=re.compile(r"shading\.backgroundPatternColor"),
        severity=SEVERITY_MEDIUM,
        remediation="Not supported by every host version; use font.highlightColor instead.",
    ),
)


@dataclass(frozen=True, slots=True)
class GateThresholds:
    warn_lines: int = 30
    warn_mutations: int = 5
    block_lines: int = 80
    block_mutations: int = 15


@dataclass(slots=True)
class ScriptMetrics:
    lines: int
    mutation_calls: int
    checkpoint_calls: int
    has_risky_patterns: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": self.lines,
            "mutationCalls": self.mutation_calls,
            "checkpointCalls": self.checkpoint_calls,
            "hasRiskyPatterns": self.has_risky_patterns,
        }


@dataclass(slots=True)
class RiskAssessment:
    level: str
    metrics: ScriptMetrics
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    matched_rules: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.level == LEVEL_BLOCK

    @property
    def warned(self) -> bool:
        return self.level == LEVEL_WARN


def count_meaningful_lines(script: str) -> int:
    count = 0
    for line in script.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(_COMMENT_PREFIXES):
            continue
        count += 1
    return count


def _mutation_pattern(verbs: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(verb) for verb in verbs)
    return re.compile(rf"\.(?:{alternatives})[A-Z][a-zA-Z]*\(")


class RiskGate:
    def __init__(
        self,
        thresholds: GateThresholds | None = None,
        policy: Iterable[RiskRule] = DEFAULT_RISK_POLICY,
        mutation_verbs: Iterable[str] = DEFAULT_MUTATION_VERBS,
    ) -> None:
        self.thresholds = thresholds or GateThresholds()
        self.policy = tuple(policy)
        self._mutation_re = _mutation_pattern(mutation_verbs)

    def measure(self, script: str) -> ScriptMetrics:
        return ScriptMetrics(
            lines=count_meaningful_lines(script),
            mutation_calls=len(self._mutation_re.findall(script)),
            checkpoint_calls=len(_CHECKPOINT_RE.findall(script)),
            has_risky_patterns=any(rule.pattern.search(script) for rule in self.policy),
        )

    def assess(self, script: str) -> RiskAssessment:
        limits = self.thresholds
        metrics = self.measure(script)
        issues: list[str] = []
        suggestions: list[str] = []
        matched: list[str] = []

        for rule in self.policy:
            if rule.pattern.search(script):
                matched.append(rule.name)
                issues.append(f"Risky API detected: {rule.name} ({rule.severity} risk)")
                suggestions.append(rule.remediation)

        if metrics.lines > limits.warn_lines:
            issues.append(f"Too many lines: {metrics.lines} (recommended <= {limits.warn_lines})")
            suggestions.append("Split the script into several steps, one section or logical unit per step.")
        if metrics.mutation_calls > limits.warn_mutations:
            issues.append(
                f"Too many insert operations: {metrics.mutation_calls} (recommended <= {limits.warn_mutations})"
            )
            suggestions.append("Reduce the number of insert operations per execution; run them in steps.")
        # Advisory only; these never change the level.
        if metrics.checkpoint_calls == 0:
            issues.append("No context.sync() call")
            suggestions.append("Call await context.sync() after queuing operations.")
        elif metrics.checkpoint_calls > MAX_CHECKPOINT_CALLS:
            issues.append(f"Too many context.sync() calls: {metrics.checkpoint_calls} (may hurt performance)")
            suggestions.append("Batch operations to reduce the number of sync() calls.")
        if not _SUCCESS_MARKER_RE.search(script):
            issues.append("No explicit success marker returned")
            suggestions.append('Return { success: true, created: "..." } so the result can be verified.')

        if metrics.lines > limits.block_lines or metrics.mutation_calls > limits.block_mutations:
            level = LEVEL_BLOCK
        elif (
            metrics.lines > limits.warn_lines
            or metrics.mutation_calls > limits.warn_mutations
            or metrics.has_risky_patterns
        ):
            level = LEVEL_WARN
        else:
            level = LEVEL_OK

        return RiskAssessment(
            level=level,
            metrics=metrics,
            issues=issues,
            suggestions=suggestions,
            matched_rules=matched,
        )

    def block_guidance(self, assessment: RiskAssessment) -> str:
        """Guidance returned instead of dispatching a blocked script."""
        limits = self.thresholds
        metrics = assessment.metrics
        lines = [
            "Script blocked: too complex to execute in one step.",
            "",
            "## Issues",
            "",
        ]
        lines.extend(f"- {issue}" for issue in assessment.issues)
        lines.extend(
            [
                "",
                "## Metrics",
                "",
                f"- Lines: {metrics.lines}",
                f"- Insert operations: {metrics.mutation_calls}",
                f"- sync() calls: {metrics.checkpoint_calls}",
                f"- Risky APIs: {'yes' if metrics.has_risky_patterns else 'no'}",
                "",
                "## Suggestions",
                "",
            ]
        )
        lines.extend(f"{index}. {suggestion}" for index, suggestion in enumerate(assessment.suggestions, start=1))
        lines.extend(
            [
                "",
                "## Requirement",
                "",
                "Split the script into smaller steps and submit them one at a time. Each step must:",
                f"1. Stay within {limits.warn_lines} lines.",
                f"2. Use at most {limits.warn_mutations} insert operations.",
                '3. Validate itself by returning an explicit success marker, e.g. `return { success: true, created: "..." }`.',
                "4. Handle a single logical unit (for example one section).",
            ]
        )
        return "\n".join(lines)
