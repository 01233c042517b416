import asyncio

from app.services.transformer.clarification import (
    PROCEED_REASONING,
    ClarificationAssessor,
    capacity_note,
    sanitize_clarification,
)
from app.services.transformer.dossier import DossierBuilder
from app.services.transformer.goal_parser import GoalParser
from transformer_fakes import FakeLanguageModel, MemoryProfileStore


def _assessor(llm, memory_stores, profiles=None) -> ClarificationAssessor:
    profiles = profiles or memory_stores["profiles"]
    dossiers = DossierBuilder(memory_stores["habits"], memory_stores["entries"], profiles, memory_stores["journal"])
    return ClarificationAssessor(llm, GoalParser(llm), dossiers, profiles)


def test_unconfigured_provider_proceeds(memory_stores) -> None:
    llm = FakeLanguageModel(configured=False)

    result = asyncio.run(_assessor(llm, memory_stores).assess("Get fit", "user-1"))

    assert result.needs_clarification is False
    assert result.questions == []
    assert result.reasoning == PROCEED_REASONING
    assert llm.calls == []


def test_questions_are_capped_at_three(memory_stores) -> None:
    questions = [{"question": f"Question {index}?", "why": "context", "examples": ["a", "b"]} for index in range(5)]
    llm = FakeLanguageModel(
        parse=[{"goalType": "single", "intent": "fitness"}],
        clarify=[{"needsClarification": True, "questions": questions, "reasoning": "Too vague"}],
    )

    result = asyncio.run(_assessor(llm, memory_stores).assess("Get fit", "user-1"))

    assert result.needs_clarification is True
    assert [question.question for question in result.questions] == ["Question 0?", "Question 1?", "Question 2?"]
    assert result.reasoning == "Too vague"


def test_provider_error_means_proceed(memory_stores) -> None:
    llm = FakeLanguageModel(parse=[{"goalType": "single"}], clarify=[RuntimeError("timeout")])

    result = asyncio.run(_assessor(llm, memory_stores).assess("Get fit", "user-1"))

    assert result.needs_clarification is False
    assert result.questions == []


def test_capacity_is_mentioned_in_prompt(memory_stores) -> None:
    llm = FakeLanguageModel(parse=[{"goalType": "single"}], clarify=[{"needsClarification": False}])

    asyncio.run(_assessor(llm, memory_stores, MemoryProfileStore(active_plans=4)).assess("Get fit", "user-1"))

    prompt = llm.calls_of("clarify")[0]["user"]
    assert "already has 4 active plan(s)" in prompt
    assert "Capacity is a concern" in prompt


def test_multi_goal_gets_goal_analysis(memory_stores) -> None:
    llm = FakeLanguageModel(
        parse=[
            {
                "goalType": "multi",
                "subGoals": ["Run a 5K", "Save money"],
                "suiteGroups": [
                    {"name": "Running", "intent": "fitness", "subGoalIndices": [0]},
                    {"name": "Savings", "intent": "finance", "subGoalIndices": [1]},
                ],
            }
        ],
        clarify=[{"needsClarification": False, "reasoning": "Clear"}],
    )

    result = asyncio.run(_assessor(llm, memory_stores).assess("Run a 5K and save money", "user-1"))

    assert result.goal_analysis == "This will become 2 linked plans: Running, Savings."


def test_sanitize_requires_questions_for_clarification() -> None:
    result = sanitize_clarification({"needsClarification": True, "questions": [{"question": ""}, "bad"]})

    assert result.needs_clarification is False
    assert result.questions == []
    assert capacity_note(0).startswith("The user has no active plans")
