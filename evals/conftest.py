"""Eval fixtures -- temp database, seeded service, rule factories, API client."""

import pytest

from safetygate.config import Settings
from safetygate.engine.logic import dump_logic, parse_logic
from safetygate.engine.models import RuleDefaults, RuleStatus, RuleVersion
from safetygate.engine.severity import RuleKind
from safetygate.engine.subjects import ChatMessage, IntakeSubject, ReportSection, ReportSubject
from safetygate.service import SafetyService
from safetygate.store import RuleStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "safetygate.db"


@pytest.fixture
def rule_store(db_path):
    """Empty rule store, nothing seeded."""
    return RuleStore(db_path)


@pytest.fixture
def service(db_path):
    """Service over a fresh database with the built-in catalog active."""
    return SafetyService(Settings(db_path=db_path, seed_catalog=True))


@pytest.fixture
def empty_service(db_path):
    return SafetyService(Settings(db_path=db_path, seed_catalog=False))


@pytest.fixture
def client(service, monkeypatch):
    """TestClient with auth disabled (dev mode)."""
    from fastapi.testclient import TestClient

    from safetygate.api.gateway import create_app

    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    return TestClient(create_app(service=service))


@pytest.fixture
def make_rule():
    """Build an in-memory active RuleVersion from logic JSON."""

    def _make(
        key: str,
        logic: dict | None,
        level: str = "A",
        kind: str = RuleKind.INTAKE_SAFETY,
        version: int = 1,
        title: str | None = None,
    ) -> RuleVersion:
        return RuleVersion(
            id=f"{key}-v{version}",
            rule_id=key,
            version=version,
            status=RuleStatus.ACTIVE,
            logic=dump_logic(parse_logic(logic)) if logic is not None else None,
            defaults=RuleDefaults(level_default=level),
            change_reason="eval fixture",
            created_by="evals",
            created_at="2024-01-01T00:00:00+00:00",
            rule_key=key,
            title=title or key,
            kind=kind,
        )

    return _make


@pytest.fixture
def make_intake():
    def _make(
        intake_id: str = "intake-1",
        structured_data: dict | None = None,
        chat: list[str] | None = None,
        signals: list[str] | None = None,
    ) -> IntakeSubject:
        return IntakeSubject(
            intake_id=intake_id,
            structured_data=structured_data or {},
            chat_messages=[ChatMessage(id=f"msg-{i}", content=text) for i, text in enumerate(chat or [])],
            intake_signals=signals or [],
        )

    return _make


@pytest.fixture
def make_report():
    def _make(job_id: str = "job-1", **sections) -> ReportSubject:
        """sections: section_key=draft, or section_key=(draft, signals, scores)."""
        built = []
        for key, value in sections.items():
            if isinstance(value, tuple):
                draft, signals, scores = value
                built.append(ReportSection(section_key=key, draft=draft, signals=tuple(signals), scores=scores))
            else:
                built.append(ReportSection(section_key=key, draft=value))
        return ReportSubject(job_id=job_id, sections=built)

    return _make
