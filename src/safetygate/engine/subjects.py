"""
Evaluation subjects -- what the rules look at, with provenance attached.

The engine never reads raw input directly. A subject exposes its content as
TextBlocks and NumericFields that already know where they came from
(source, source_id, field_path), so every match can point at its exact
evidence.

  IntakeSubject  clinical intake: structured_data string leaves + chat messages
  ReportSubject  generated report: one text block per section draft,
                 numeric fields from section scores, signals per section
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .models import EvidenceSource

INTAKE_ROOT = "structured_data"

# Symptoms the patient explicitly denied; list items keep this path
DENIAL_FIELD_PATH = f"{INTAKE_ROOT}.relevant_negatives"

# Keys holding engine output or workflow state, never patient statements
INTAKE_EXCLUDED_KEYS = frozenset({"status", "safety", "policy_override"})


@dataclass(frozen=True)
class TextBlock:
    """One unit of text a matcher can search, with its provenance."""

    source: str
    source_id: str
    text: str
    field_path: str | None = None
    section_key: str | None = None


@dataclass(frozen=True)
class NumericField:
    """A named value a numeric_range matcher can check, with its provenance."""

    name: str
    raw: Any
    source: str
    source_id: str
    field_path: str | None = None
    section_key: str | None = None


@runtime_checkable
class EvaluationSubject(Protocol):
    """Interface every evaluation input implements."""

    @property
    def record_id(self) -> str: ...

    def text_blocks(self) -> list[TextBlock]: ...

    def fields(self, name: str) -> list[NumericField]: ...

    def signals(self, section_key: str | None = None) -> list[str]: ...

    def known_source_ids(self) -> dict[str, set[str]]: ...


# =============================================================================
# INTAKE
# =============================================================================


@dataclass(frozen=True)
class ChatMessage:
    id: str
    content: str


def _walk_strings(value: Any, path: str, out: list[tuple[str, str]]) -> None:
    """Collect (path, text) for every non-empty string leaf. List items keep the list path."""
    if isinstance(value, str):
        if value.strip():
            out.append((path, value.strip()))
    elif isinstance(value, dict):
        for key, child in value.items():
            if key in INTAKE_EXCLUDED_KEYS:
                continue
            _walk_strings(child, f"{path}.{key}", out)
    elif isinstance(value, (list, tuple)):
        for child in value:
            _walk_strings(child, path, out)


@dataclass
class IntakeSubject:
    """A clinical intake record plus the verbatim chat it was extracted from."""

    intake_id: str
    structured_data: dict = field(default_factory=dict)
    chat_messages: list[ChatMessage] = field(default_factory=list)
    intake_signals: list[str] = field(default_factory=list)

    @property
    def record_id(self) -> str:
        return self.intake_id

    def text_blocks(self) -> list[TextBlock]:
        leaves: list[tuple[str, str]] = []
        _walk_strings(self.structured_data, INTAKE_ROOT, leaves)
        blocks = [
            TextBlock(
                source=EvidenceSource.INTAKE,
                source_id=self.intake_id,
                text=text,
                field_path=path,
            )
            for path, text in leaves
        ]
        for message in self.chat_messages:
            if message.content and message.content.strip():
                blocks.append(TextBlock(
                    source=EvidenceSource.CHAT,
                    source_id=message.id,
                    text=message.content.strip(),
                ))
        return blocks

    def fields(self, name: str) -> list[NumericField]:
        path = name if name.startswith(f"{INTAKE_ROOT}.") else f"{INTAKE_ROOT}.{name}"
        node: Any = self.structured_data
        for part in path.split(".")[1:]:
            if not isinstance(node, dict) or part not in node:
                return []
            node = node[part]
        if node is None or isinstance(node, dict):
            return []
        return [NumericField(
            name=name,
            raw=node,
            source=EvidenceSource.INTAKE,
            source_id=self.intake_id,
            field_path=path,
        )]

    def signals(self, section_key: str | None = None) -> list[str]:
        return list(self.intake_signals)

    def known_source_ids(self) -> dict[str, set[str]]:
        return {
            EvidenceSource.INTAKE: {self.intake_id},
            EvidenceSource.CHAT: {m.id for m in self.chat_messages if m.id},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IntakeSubject":
        return cls(
            intake_id=str(data.get("id") or data.get("intake_id") or ""),
            structured_data=dict(data.get("structured_data") or {}),
            chat_messages=[
                ChatMessage(id=str(m.get("id", "")), content=str(m.get("content", "")))
                for m in data.get("chat_messages") or []
            ],
            intake_signals=[str(s) for s in data.get("signals") or []],
        )


# =============================================================================
# REPORT
# =============================================================================


@dataclass(frozen=True)
class ReportSection:
    section_key: str
    draft: str
    signals: tuple[str, ...] = ()
    scores: dict = field(default_factory=dict)


@dataclass
class ReportSubject:
    """Generated report content awaiting medical validation."""

    job_id: str
    sections: list[ReportSection] = field(default_factory=list)

    @property
    def record_id(self) -> str:
        return self.job_id

    def text_blocks(self) -> list[TextBlock]:
        return [
            TextBlock(
                source=EvidenceSource.REPORT_SECTION,
                source_id=section.section_key,
                text=section.draft.strip(),
                section_key=section.section_key,
            )
            for section in self.sections
            if section.draft and section.draft.strip()
        ]

    def fields(self, name: str) -> list[NumericField]:
        return [
            NumericField(
                name=name,
                raw=section.scores[name],
                source=EvidenceSource.REPORT_SECTION,
                source_id=section.section_key,
                field_path=f"scores.{name}",
                section_key=section.section_key,
            )
            for section in self.sections
            if name in section.scores and section.scores[name] is not None
        ]

    def signals(self, section_key: str | None = None) -> list[str]:
        if section_key is None:
            return [s for section in self.sections for s in section.signals]
        return [
            s
            for section in self.sections
            if section.section_key == section_key
            for s in section.signals
        ]

    def known_source_ids(self) -> dict[str, set[str]]:
        return {EvidenceSource.REPORT_SECTION: {s.section_key for s in self.sections if s.section_key}}

    @classmethod
    def from_dict(cls, data: dict) -> "ReportSubject":
        sections = []
        for raw in data.get("sections") or []:
            inputs = raw.get("inputs") or {}
            sections.append(ReportSection(
                section_key=str(raw.get("section_key") or raw.get("sectionKey") or ""),
                draft=str(raw.get("draft") or ""),
                signals=tuple(str(s) for s in (raw.get("signals") or inputs.get("signals") or [])),
                scores=dict(raw.get("scores") or inputs.get("scores") or {}),
            ))
        return cls(job_id=str(data.get("job_id") or data.get("jobId") or ""), sections=sections)
