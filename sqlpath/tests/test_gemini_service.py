"""
Content service tests

The model is never called: _generate_json / _generate_text are patched at
the module boundary.
"""
import pytest
from unittest.mock import AsyncMock, patch

from sqlpath.constants import ChallengeDefinition, MCQ_CORRECT_POINTS
from sqlpath.exceptions import ContentServiceError
from sqlpath.schemas.challenge import McqChallenge, SqlChallenge
from sqlpath.services import gemini_service

GEN_JSON = "sqlpath.services.gemini_service._generate_json"
GEN_TEXT = "sqlpath.services.gemini_service._generate_text"

DEFINITION = ChallengeDefinition(4, "Aggregation", "Summarise rows with GROUP BY.")


def mcq() -> McqChallenge:
    return McqChallenge(
        title="Which clause filters groups?",
        task="Pick the clause",
        options=["WHERE", "HAVING", "ORDER BY"],
        correct_answer="HAVING",
    )


def sql() -> SqlChallenge:
    return SqlChallenge(title="Revenue per region", topic="Aggregation", task="Sum revenue by region")


class TestGrading:

    def test_mcq_correct(self):
        verdict = gemini_service.grade_mcq(mcq(), "HAVING")
        assert verdict.is_correct is True
        assert verdict.points == MCQ_CORRECT_POINTS

    def test_mcq_incorrect_names_answer(self):
        verdict = gemini_service.grade_mcq(mcq(), "WHERE")
        assert verdict.is_correct is False
        assert verdict.points == 0
        assert verdict.feedback == "Incorrect. The correct answer was HAVING."

    @pytest.mark.asyncio
    async def test_mcq_never_calls_model(self):
        with patch(GEN_JSON, new=AsyncMock()) as generate:
            verdict = await gemini_service.validate_submission(mcq(), "HAVING", "Retail")
        assert verdict.is_correct is True
        generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sql_graded_by_model(self):
        judged = {"isCorrect": True, "feedback": "Nice", "bestPractice": "Alias aggregates", "points": 90, "data": []}
        with patch(GEN_JSON, new=AsyncMock(return_value=judged)):
            verdict = await gemini_service.validate_submission(sql(), "SELECT region, SUM(revenue) FROM sales GROUP BY region", "Retail")
        assert verdict.is_correct is True
        assert verdict.points == 90
        assert verdict.best_practice == "Alias aggregates"

    @pytest.mark.asyncio
    async def test_service_failure_is_system_error(self):
        with patch(GEN_JSON, new=AsyncMock(side_effect=ContentServiceError("quota"))):
            verdict = await gemini_service.validate_submission(sql(), "SELECT 1", "Retail")
        assert verdict.is_correct is False
        assert verdict.points == 0
        assert verdict.feedback == "System error during validation."


class TestGeneration:

    def test_personalised_context(self):
        assert gemini_service.effective_context("Personalized", "Coffee roastery") == "Coffee roastery"
        assert gemini_service.effective_context("Personalized", None) == "Personalized"
        assert gemini_service.effective_context("Retail", "Coffee roastery") == "Retail"

    @pytest.mark.asyncio
    async def test_challenge_failure_returns_placeholder(self):
        with patch(GEN_JSON, new=AsyncMock(side_effect=ContentServiceError("down"))):
            challenge = await gemini_service.generate_challenge(DEFINITION, "Retail", "Beginner")

        assert challenge.title == "Error Loading Challenge 4"
        assert challenge.tables == []
        assert challenge.difficulty == "Beginner"

    @pytest.mark.asyncio
    async def test_challenge_slot_fields_override_model(self):
        generated = {
            "type": "sql",
            "id": 99,
            "title": "Basket sizes",
            "topic": "something else",
            "task": "Average items per order",
            "schema": [{"tableName": "orders", "columns": ["id", "items"], "data": [["1", "3"]]}],
        }
        with patch(GEN_JSON, new=AsyncMock(return_value=generated)):
            challenge = await gemini_service.generate_challenge(DEFINITION, "Retail", "Intermediate")

        assert challenge.id == 4
        assert challenge.topic == "Aggregation"
        assert challenge.difficulty == "Intermediate"
        assert challenge.tables[0].table_name == "orders"

    @pytest.mark.asyncio
    async def test_outline_maps_camel_case(self):
        generated = {
            "scenario": "A logistics data team",
            "modules": [
                {"title": "Late shipments", "skillFocus": "WHERE", "estimatedTime": "10 mins"},
                {"skillFocus": "untitled rows are dropped"},
            ],
        }
        with patch(GEN_JSON, new=AsyncMock(return_value=generated)):
            outline = await gemini_service.generate_course_outline("Ops", "Logistics", "Analyst", "Beginner", "shipping")

        assert outline["scenario"] == "A logistics data team"
        assert len(outline["modules"]) == 1
        assert outline["modules"][0]["skill_focus"] == "WHERE"
        assert outline["modules"][0]["estimated_time"] == "10 mins"

    @pytest.mark.asyncio
    async def test_outline_fallback(self):
        with patch(GEN_JSON, new=AsyncMock(side_effect=ContentServiceError("down"))):
            outline = await gemini_service.generate_course_outline("Ops", "Logistics", "Analyst", "Beginner", "shipping")
        assert outline == {"scenario": "shipping", "modules": []}

    @pytest.mark.asyncio
    async def test_refine_falls_back_to_original(self):
        module = {"title": "Joins", "skill_focus": "INNER JOIN", "sequence_order": 3}
        with patch(GEN_JSON, new=AsyncMock(return_value={"modules": []})):
            refined = await gemini_service.refine_course_module(module, "Retail", "make it harder")

        assert len(refined) == 1
        assert refined[0]["title"] == "Joins"
        assert "sequence_order" not in refined[0]

    @pytest.mark.asyncio
    async def test_brief_falls_back_to_context(self):
        with patch(GEN_TEXT, new=AsyncMock(side_effect=ContentServiceError("down"))):
            brief = await gemini_service.generate_business_brief("Coffee roastery")
        assert brief == "Coffee roastery"
