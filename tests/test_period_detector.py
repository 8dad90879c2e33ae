"""Tests for date-range detection."""

from datetime import date

import pytest

from nomina_engine.errors import DuplicatePeriodError
from nomina_engine.periods import DetectionAction, DetectionResult, PeriodDetector, get_strategy


@pytest.fixture
def detector(session) -> PeriodDetector:
    return PeriodDetector(session, get_strategy("biweekly"))


class TestDetect:
    async def test_exact_match_continues(self, detector, test_company, test_period):
        result = await detector.detect(test_company.company_id, date(2025, 1, 1), date(2025, 1, 15))

        assert result.action == DetectionAction.CONTINUE
        assert result.period.period_id == test_period.period_id
        assert result.sequence_number == 1

    async def test_overlap_with_open_period_conflicts(self, detector, test_company, test_period):
        result = await detector.detect(test_company.company_id, date(2025, 1, 10), date(2025, 1, 20))

        assert result.action == DetectionAction.CONFLICT
        assert result.period.period_id == test_period.period_id
        assert "superpone" in result.message

    async def test_overlap_with_closed_period_is_not_a_conflict(
        self, session, detector, test_company, test_period
    ):
        test_period.state = "closed"
        await session.commit()

        # Starts in the last quincena of 2024, runs into the closed period
        result = await detector.detect(test_company.company_id, date(2024, 12, 28), date(2025, 1, 10))

        assert result.action == DetectionAction.CREATE
        assert (result.year, result.sequence_number) == (2024, 24)

    async def test_slot_held_by_closed_period_conflicts(
        self, session, detector, test_company, test_period
    ):
        test_period.state = "closed"
        await session.commit()

        result = await detector.detect(test_company.company_id, date(2025, 1, 2), date(2025, 1, 15))

        assert result.action == DetectionAction.CONFLICT
        assert result.period.period_id == test_period.period_id
        assert result.sequence_number == 1
        assert result.is_coherent is False
        assert "Ya existe el período número 1 del 2025" in result.message

    async def test_canonical_range_creates(self, detector, test_company):
        result = await detector.detect(test_company.company_id, date(2025, 2, 16), date(2025, 2, 28))

        assert result.action == DetectionAction.CREATE
        assert result.is_coherent is True
        assert result.year == 2025
        assert result.sequence_number == 4
        assert result.label == "Quincena 4 - 16 al 28 de Febrero 2025"
        assert result.warnings == []

    async def test_non_canonical_range_creates_with_warning(self, detector, test_company):
        result = await detector.detect(test_company.company_id, date(2025, 2, 3), date(2025, 2, 14))

        assert result.action == DetectionAction.CREATE
        assert result.is_coherent is False
        assert result.sequence_number == 3
        assert result.label == "Quincena 3 del 2025 - 3 al 14 de Febrero 2025"
        assert any("no corresponden exactamente" in w for w in result.warnings)

    async def test_invalid_range(self, detector, test_company):
        result = await detector.detect(test_company.company_id, date(2025, 2, 14), date(2025, 2, 3))

        assert result.action == DetectionAction.INVALID
        assert result.errors


class TestCreateFromDetection:
    async def test_persists_literal_dates(self, session, detector, test_company):
        detection = await detector.detect(test_company.company_id, date(2025, 2, 3), date(2025, 2, 14))
        period = await detector.create_from_detection(test_company.company_id, detection)
        await session.commit()

        assert period.start_date == date(2025, 2, 3)
        assert period.end_date == date(2025, 2, 14)
        assert period.sequence_number == 3
        assert period.state == "draft"

    async def test_slot_taken_after_detection_raises(self, session, detector, test_company):
        detection = await detector.detect(test_company.company_id, date(2025, 2, 3), date(2025, 2, 14))
        assert detection.action == DetectionAction.CREATE
        # Someone else creates the canonical quincena in between
        canonical = await detector.detect(test_company.company_id, date(2025, 2, 1), date(2025, 2, 15))
        await detector.create_from_detection(test_company.company_id, canonical)
        await session.commit()

        with pytest.raises(DuplicatePeriodError):
            await detector.create_from_detection(test_company.company_id, detection)

    async def test_rejects_non_create_detection(self, detector, test_company, test_period):
        detection = await detector.detect(test_company.company_id, date(2025, 1, 1), date(2025, 1, 15))

        with pytest.raises(ValueError):
            await detector.create_from_detection(test_company.company_id, detection)

    async def test_conflicting_slot_is_not_creatable(
        self, session, detector, test_company, test_period
    ):
        test_period.state = "closed"
        await session.commit()
        detection = await detector.detect(test_company.company_id, date(2025, 1, 2), date(2025, 1, 15))

        with pytest.raises(ValueError):
            await detector.create_from_detection(test_company.company_id, detection)

    async def test_create_detection_without_slot(self, detector, test_company):
        detection = DetectionResult(
            action=DetectionAction.CREATE,
            start=date(2025, 2, 3),
            end=date(2025, 2, 14),
            message="manual",
        )

        with pytest.raises(ValueError):
            await detector.create_from_detection(test_company.company_id, detection)
