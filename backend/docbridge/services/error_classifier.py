"""Failure taxonomy and the remediation text handed back to the agent.

Every failure reported by a client is normalised into one of a closed set of
kinds before anything else looks at it. Each kind carries a fixed checklist of
remediation techniques; `build_feedback()` turns a classified error plus the
failing script into the message the agent receives for its next repair
attempt, and `build_terminal_report()` is used once the repair budget is spent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "InvalidArgument"
    INVALID_REFERENCE = "InvalidReference"
    API_UNAVAILABLE = "ApiUnavailable"
    GENERAL_FAILURE = "GeneralFailure"
    NETWORK_FAILURE = "NetworkFailure"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


# Names the host runtime (or older clients) use for the same kinds.
_KIND_ALIASES: dict[str, ErrorKind] = {
    "invalidargument": ErrorKind.INVALID_ARGUMENT,
    "invalidreference": ErrorKind.INVALID_REFERENCE,
    "itemnotfound": ErrorKind.INVALID_REFERENCE,
    "apiunavailable": ErrorKind.API_UNAVAILABLE,
    "apinotfound": ErrorKind.API_UNAVAILABLE,
    "notimplemented": ErrorKind.API_UNAVAILABLE,
    "generalfailure": ErrorKind.GENERAL_FAILURE,
    "generalexception": ErrorKind.GENERAL_FAILURE,
    "networkfailure": ErrorKind.NETWORK_FAILURE,
    "networkerror": ErrorKind.NETWORK_FAILURE,
    "timeout": ErrorKind.TIMEOUT,
    "timeouterror": ErrorKind.TIMEOUT,
    "unknown": ErrorKind.UNKNOWN,
    "unknownerror": ErrorKind.UNKNOWN,
}

_DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_ARGUMENT: "The argument is invalid or missing or has an incorrect format.",
    ErrorKind.INVALID_REFERENCE: "This reference is not valid for the current operation.",
    ErrorKind.API_UNAVAILABLE: "The requested API is not available on this host.",
    ErrorKind.GENERAL_FAILURE: "An internal error occurred while processing the request.",
    ErrorKind.NETWORK_FAILURE: "A network error occurred.",
    ErrorKind.TIMEOUT: "The operation timed out.",
    ErrorKind.UNKNOWN: "The client reported a failure in an unrecognised shape.",
}

_NETWORK_RE = re.compile(r"\bnetwork\b", re.IGNORECASE)
_TIMEOUT_RE = re.compile(r"\btime(?:d)?\s?out\b", re.IGNORECASE)
_HOST_API_RE = re.compile(r"\b(?:Excel|Word|PowerPoint|Office)\.\w+")


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    code: str | None = None
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.code:
            payload["code"] = self.code
        if self.stack_trace:
            payload["stackTrace"] = self.stack_trace
        return payload


@dataclass(frozen=True, slots=True)
class RemediationGuide:
    summary: str
    techniques: tuple[str, ...]
    common_causes: tuple[str, ...] = field(default_factory=tuple)


REMEDIATION_GUIDES: dict[ErrorKind, RemediationGuide] = {
    ErrorKind.INVALID_ARGUMENT: RemediationGuide(
        summary="Argument validation failed; check parameter names, types and value ranges.",
        techniques=(
            "Use the exact enumeration values the API expects (e.g. 'Before', 'After', 'Start', 'End').",
            "Make sure addresses and identifiers are well formed (e.g. 'A1', 'B2:D4').",
            "Check that array indexes stay within bounds.",
            "Pass values of the declared type (string, number, boolean).",
            "Never pass null or undefined for a required parameter.",
        ),
        common_causes=(
            "Misspelled parameter",
            "Wrong enumeration value",
            "Parameter type mismatch",
            "Missing required parameter",
        ),
    ),
    ErrorKind.INVALID_REFERENCE: RemediationGuide(
        summary="A referenced object does not exist or is no longer valid; verify it before use.",
        techniques=(
            "Verify existence before use: prefer getItemOrNullObject() over getItem().",
            "Load referenced properties with load() and sync before reading them.",
            "Check the not-found sentinel (isNullObject) before proceeding.",
            "Create an object before referencing it later in the same script.",
            "Check names carefully; lookups are case sensitive.",
        ),
        common_causes=(
            "Reference to a sheet, range or item that does not exist",
            "Object was deleted earlier",
            "Name misspelled",
            "Property read before sync",
        ),
    ),
    ErrorKind.API_UNAVAILABLE: RemediationGuide(
        summary="The API is not available in this host version or platform.",
        techniques=(
            "Check availability with Office.context.requirements.isSetSupported() first.",
            "Provide a fallback that uses an older, widely supported API.",
            "Check the minimum host version the API requires.",
            "Branch per platform (web, desktop, mac) when behaviour differs.",
        ),
        common_causes=(
            "API introduced in a newer requirement set",
            "Unsupported platform",
            "API name misspelled",
        ),
    ),
    ErrorKind.GENERAL_FAILURE: RemediationGuide(
        summary="The host hit an internal error or an operation conflict.",
        techniques=(
            "Simplify the step; avoid doing many operations at once.",
            "Split work into batches and sync after each batch.",
            "Check for conflicting concurrent operations.",
            "Create objects before modifying them; keep operations in order.",
        ),
        common_causes=(
            "Too much data loaded at once",
            "Operations in the wrong order",
            "Concurrent operations conflicting",
        ),
    ),
    ErrorKind.NETWORK_FAILURE: RemediationGuide(
        summary="The host could not reach a network resource.",
        techniques=(
            "Retry the same step once the connection is stable.",
            "Reduce the amount of data moved in a single call.",
            "Avoid remote resources (images, links) that may be unreachable from the host.",
        ),
        common_causes=("Unstable network", "Remote server not responding", "Payload too large"),
    ),
    ErrorKind.TIMEOUT: RemediationGuide(
        summary="No client reported a result in time.",
        techniques=(
            "Check that the document editor is open and the add-in is loaded.",
            "Reload the add-in page to re-establish the connection.",
            "Split long-running scripts into smaller steps.",
        ),
        common_causes=(
            "Host application not loaded",
            "Client disconnected from the bridge",
            "Script running too long",
        ),
    ),
    ErrorKind.UNKNOWN: RemediationGuide(
        summary="Unrecognised failure; narrow it down step by step.",
        techniques=(
            "Read the error message for concrete hints.",
            "Check the script for syntax errors.",
            "Await every asynchronous call.",
            "Wrap the body in try/catch and return the caught message.",
            "Simplify the script to isolate the failing statement.",
        ),
        common_causes=("Syntax error", "Unawaited async call", "Undefined variable"),
    ),
}

# Timeouts are an environment problem: no script rewrite can fix them.
RETRYABLE_KINDS = frozenset(kind for kind in ErrorKind if kind is not ErrorKind.TIMEOUT)


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS


def _lookup_kind(value: Any) -> ErrorKind | None:
    if not isinstance(value, str):
        return None
    return _KIND_ALIASES.get(value.strip().replace("_", "").replace(" ", "").lower())


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def classify(raw: Any) -> ClassifiedError:
    """Map whatever the client sent into the closed taxonomy."""
    if isinstance(raw, ClassifiedError):
        return raw
    if isinstance(raw, str):
        message = raw.strip() or _DEFAULT_MESSAGES[ErrorKind.UNKNOWN]
        return ClassifiedError(kind=_kind_from_message(message), message=message)
    if not isinstance(raw, dict):
        return ClassifiedError(kind=ErrorKind.UNKNOWN, message=_DEFAULT_MESSAGES[ErrorKind.UNKNOWN])

    code = _coerce_text(raw.get("code"))
    message = _coerce_text(raw.get("message"))
    stack_trace = _coerce_text(raw.get("stackTrace") or raw.get("stack_trace") or raw.get("stack"))

    kind = None
    for key in ("kind", "type", "code", "name"):
        kind = _lookup_kind(raw.get(key))
        if kind is not None and kind is not ErrorKind.UNKNOWN:
            break
    if kind is None or kind is ErrorKind.UNKNOWN:
        kind = _kind_from_message(message) if message else ErrorKind.UNKNOWN

    return ClassifiedError(
        kind=kind,
        message=message or _DEFAULT_MESSAGES[kind],
        code=code,
        stack_trace=stack_trace,
    )


def _kind_from_message(message: str) -> ErrorKind:
    if _NETWORK_RE.search(message):
        return ErrorKind.NETWORK_FAILURE
    if _TIMEOUT_RE.search(message):
        return ErrorKind.TIMEOUT
    return ErrorKind.UNKNOWN


def infer_causes(error: ClassifiedError) -> list[str]:
    """Narrow the generic cause list using keywords from the message."""
    causes: list[str] = []
    message = error.message.lower()
    if error.kind is ErrorKind.INVALID_ARGUMENT:
        if "name" in message:
            causes.append("A parameter name may be misspelled or not exist.")
        if "range" in message or "address" in message:
            causes.append("A cell or range address may be malformed.")
        if "value" in message:
            causes.append("A parameter value may be out of the allowed range.")
    elif error.kind is ErrorKind.INVALID_REFERENCE:
        if "worksheet" in message or "sheet" in message:
            causes.append("The referenced worksheet may not exist.")
        if "null" in message or "undefined" in message:
            causes.append("An object may not have been initialised.")
    elif error.kind is ErrorKind.API_UNAVAILABLE:
        causes.append("The current host version may not support this API.")
    if not causes:
        causes.extend(REMEDIATION_GUIDES[error.kind].common_causes)
    return causes


def code_fix_suggestions(error: ClassifiedError, script: str) -> list[str]:
    """Concrete suggestions derived from what the failing script does (or lacks)."""
    suggestions: list[str] = []
    if error.kind is ErrorKind.INVALID_ARGUMENT:
        if ".getItem(" in script:
            suggestions.append("Consider getItemOrNullObject() instead of getItem().")
        if "InsertLocation" in script:
            suggestions.append("Check the InsertLocation values ('Before', 'After', 'Start', 'End').")
    elif error.kind is ErrorKind.INVALID_REFERENCE:
        if ".load(" not in script:
            suggestions.append("Call load() and sync before reading properties.")
        if "getItemOrNullObject" not in script:
            suggestions.append("Use getItemOrNullObject() to test whether the object exists.")
        if "isNullObject" not in script:
            suggestions.append("Check isNullObject before using the object.")
    elif error.kind is ErrorKind.API_UNAVAILABLE:
        suggestions.append("Guard the call with isSetSupported() and provide a fallback.")
    elif error.kind is ErrorKind.GENERAL_FAILURE:
        if "context.sync()" not in script:
            suggestions.append("Add context.sync() so queued operations are committed.")
        if len(script) > 500:
            suggestions.append("Split the operation into several smaller steps.")
    if "try" not in script or "catch" not in script:
        suggestions.append("Add try/catch error handling.")
    return suggestions


def extract_used_apis(script: str) -> list[str]:
    seen: dict[str, None] = {}
    for match in _HOST_API_RE.findall(script):
        seen.setdefault(match, None)
    return list(seen)


def format_guide(kind: ErrorKind) -> str:
    guide = REMEDIATION_GUIDES[kind]
    lines = ["## Remediation", "", f"**Problem**: {guide.summary}", "", "**Common causes**:"]
    lines.extend(f"- {cause}" for cause in guide.common_causes)
    lines.extend(["", "**Techniques**:"])
    lines.extend(f"- {technique}" for technique in guide.techniques)
    return "\n".join(lines)


def build_feedback(
    error: ClassifiedError,
    script: str,
    attempt: int,
    max_attempts: int,
    environment: dict[str, Any] | None = None,
) -> str:
    """Compose the repair request the agent receives after a failed attempt."""
    parts = [
        f"Script execution failed (attempt {attempt}/{max_attempts}). Fix the script and submit it again.",
        "",
        "## Error",
        "",
        f"- **Kind**: {error.kind.value}",
        f"- **Message**: {error.message}",
    ]
    if error.code:
        parts.append(f"- **Code**: {error.code}")
    if error.stack_trace:
        parts.extend(["- **Stack trace**:", "```", error.stack_trace, "```"])

    parts.extend(["", "## Failing script", "", "```javascript", script.strip(), "```", ""])

    used_apis = extract_used_apis(script)
    parts.extend(["## Environment", ""])
    for key, value in (environment or {}).items():
        parts.append(f"- **{key}**: {value}")
    parts.append(f"- **APIs referenced**: {', '.join(used_apis) if used_apis else 'none recognised'}")
    parts.append("")

    parts.append(format_guide(error.kind))

    causes = infer_causes(error)
    suggestions = code_fix_suggestions(error, script)
    if causes:
        parts.extend(["", "**Likely causes for this failure**:"])
        parts.extend(f"- {cause}" for cause in causes)
    if suggestions:
        parts.extend(["", "**Suggested changes**:"])
        parts.extend(f"- {suggestion}" for suggestion in suggestions)

    parts.extend(
        [
            "",
            "## Request",
            "",
            "Resubmit a corrected, complete script through the same tool:",
            "1. Identify the root cause from the error kind and message.",
            "2. Apply the remediation techniques above.",
            "3. Add existence checks and validation where objects are referenced.",
            "4. Return an explicit success marker, e.g. `return { success: true }`.",
        ]
    )
    return "\n".join(parts)


def build_terminal_report(error: ClassifiedError, attempts: int) -> str:
    """Final answer once the repair budget for a script is exhausted."""
    parts = [
        f"Operation failed: exhausted {attempts} attempts without a successful execution.",
        "",
        f"- **Kind**: {error.kind.value}",
        f"- **Last error**: {error.message}",
    ]
    if error.code:
        parts.append(f"- **Code**: {error.code}")
    return "\n".join(parts)
