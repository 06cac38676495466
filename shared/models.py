"""
elfscope Shared Data Models
============================

Pydantic v2 models for validation findings and reports.  The decoders in
:mod:`elfscope.core` raise on the first violation; the validation layer turns
each violation into a :class:`Finding` and gathers them in a
:class:`ValidationReport` that the console and ``--json`` output render.

References:
    - SARIF v2.1.0 Specification (OASIS, 2020), "result" objects.
    - Pydantic v2 documentation. https://docs.pydantic.dev/latest/
"""

from __future__ import annotations

import datetime as _dt
import json as _json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class Severity(str, Enum):
    """Finding severity level.

    Attributes:
        ERROR:   The structure violates an ELF invariant and cannot be trusted.
        WARNING: Decodable, but unusual enough to deserve attention.
        INFO:    Informational observation.
    """

    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def style(self) -> str:
        """Rich theme style name for this severity."""
        return f"severity.{self.value.lower()}"


class Finding(BaseModel):
    """A single validation finding.

    Attributes:
        severity: Qualitative severity.
        kind:     Machine-readable failure kind (an ``ErrorKind`` value).
        location: Which structure failed, e.g. ``"header"`` or ``"section 3"``.
        message:  Human-readable detail.
        evidence: Raw values supporting the finding.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="ignore",
    )

    severity: Severity = Field(..., description="Severity level")
    kind: str = Field(..., min_length=1, description="Failure kind")
    location: str = Field(..., min_length=1, description="Failing structure")
    message: str = Field(default="", description="Detailed explanation")
    evidence: str = Field(default="", description="Supporting raw data")

    @field_validator("evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, v: Any) -> str:
        """Auto-convert non-string evidence (dict, list) to a JSON string."""
        if isinstance(v, str):
            return v
        if isinstance(v, (dict, list)):
            return _json.dumps(v, ensure_ascii=False, default=str)
        return str(v)


class ValidationReport(BaseModel):
    """All findings of one validation run over one file."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    target: str = Field(..., min_length=1, description="Validated file")
    start_time: _dt.datetime = Field(default_factory=_utcnow)
    end_time: Optional[_dt.datetime] = Field(default=None)
    checks_run: int = Field(default=0, ge=0, description="Checks executed")
    findings: list[Finding] = Field(default_factory=list)
    summary: str = Field(default="")

    # ------------------------------------------------------------------ #
    #  Derived properties
    # ------------------------------------------------------------------ #

    @property
    def is_valid(self) -> bool:
        """``True`` when no ERROR finding was recorded."""
        return not any(f.severity == Severity.ERROR for f in self.findings)

    @property
    def severity_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    @property
    def finding_count(self) -> int:
        return len(self.findings)

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def kinds(self) -> list[str]:
        """Failure kinds in the order they were found."""
        return [f.kind for f in self.findings]

    # ------------------------------------------------------------------ #
    #  Mutating helpers
    # ------------------------------------------------------------------ #

    def add_finding(self, finding: Finding) -> None:
        self.findings.append(finding)

    def finalize(self, summary: str | None = None) -> ValidationReport:
        """Set *end_time* and *summary*; returns ``self`` for chaining."""
        self.end_time = _utcnow()
        if summary is not None:
            self.summary = summary
        else:
            parts = [f"{sev}: {cnt}"
                     for sev, cnt in self.severity_counts.items() if cnt]
            self.summary = (
                f"{self.checks_run} checks, "
                f"{len(self.findings)} findings "
                f"({', '.join(parts) if parts else 'none'})"
            )
        return self
