from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.schemas.transformer import TransformerResponse
from app.db.deps import get_db
from app.db.models.habit import Habit
from app.db.models.habit_entry import HabitEntry
from app.db.models.transformer import Transformer
from app.db.models.user import User
from app.main import app
from app.services.transformer.llm import get_language_model
from app.services.transformer.models import Goal, TransformerPlan
from app.services.transformer.schema_guard import sanitize_system
from app.services.transformer_plans import save_plan
from app.services.user_service import get_or_create_user
from transformer_fakes import FakeLanguageModel, habit_payload, system_payload


@pytest.fixture()
def client(session_factory):
    llm_holder = {"llm": FakeLanguageModel()}

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_language_model] = lambda: llm_holder["llm"]

    with TestClient(app) as test_client:
        yield test_client, session_factory, llm_holder

    app.dependency_overrides.clear()


def _mixed_system() -> dict:
    raw = system_payload(phase_count=2, habits_per_phase=2)
    raw["phases"][0]["habits"] = [
        habit_payload("Run", frequency={"type": "weekly", "timesPerWeek": 4}, target={"value": 3, "unit": "miles"}),
        habit_payload("Push-ups", methodology="numeric", target={"value": 20, "unit": "reps"}),
    ]
    raw["phases"][1]["habits"] = [
        habit_payload("Long run", frequency={"type": "specific_days", "days": ["sat", "tue"]}),
        habit_payload("Stretch", target={"value": 10, "unit": "stretches"}),
    ]
    return raw


def _store_plan(session_factory, user_id: UUID) -> UUID:
    db = session_factory()
    try:
        get_or_create_user(db, user_id)
        plan = TransformerPlan(
            user_id=str(user_id),
            goal=Goal(text="Run a 5K by spring"),
            system=sanitize_system(_mixed_system()),
        )
        row = Transformer(user_id=user_id)
        save_plan(db, row, plan)
        db.commit()
        db.refresh(row)
        return row.id
    finally:
        db.close()


def _habits(session_factory, transformer_id: UUID) -> list[Habit]:
    db = session_factory()
    try:
        return (
            db.query(Habit)
            .filter(Habit.transformer_id == transformer_id)
            .order_by(Habit.transformer_phase_index, Habit.name)
            .all()
        )
    finally:
        db.close()


def test_generate_single_goal_stores_preview(client) -> None:
    test_client, session_factory, llm_holder = client
    llm_holder["llm"] = FakeLanguageModel(
        parse=[{"goalType": "single", "intent": "fitness", "keywords": ["5k"]}],
        generate=[system_payload(phase_count=2, duration_days=14)],
    )
    user_id = uuid4()

    response = test_client.post("/transformers/generate", json={"userId": str(user_id), "goal": "  Run a 5K by June  "})

    assert response.status_code == 200
    body = response.json()
    assert body["goalType"] == "single"
    assert body["previews"] == []
    preview = body["preview"]
    assert preview["status"] == "preview"
    assert preview["goal"]["text"] == "Run a 5K by June"
    assert preview["goal"]["parsed"]["intent"] == "fitness"
    assert len(preview["system"]["phases"]) == 2
    assert preview["system"]["estimatedDuration"] == {"value": 4, "unit": "weeks"}
    assert preview["turnsRemaining"] == 5
    assert body["tokenUsage"] == {"input": 200, "output": 100}

    db = session_factory()
    try:
        rows = db.query(Transformer).all()
        assert len(rows) == 1
        assert rows[0].status == "preview"
        assert db.get(User, user_id).generations_this_month == 1
    finally:
        db.close()


def test_generate_compound_goal_stores_suite(client) -> None:
    test_client, session_factory, llm_holder = client
    llm_holder["llm"] = FakeLanguageModel(
        parse=[
            {
                "goalType": "multi",
                "subGoals": [
                    {"text": "Run a 5K", "intent": "fitness"},
                    {"text": "Read 12 books", "intent": "learning_skill"},
                ],
                "suiteGroups": [
                    {"name": "Running", "intent": "fitness", "subGoalIndices": [0]},
                    {"name": "Reading", "intent": "learning_skill", "subGoalIndices": [1]},
                ],
                "synergies": ["Audiobooks on easy runs"],
            }
        ],
        generate=[system_payload(), system_payload(phase_count=1)],
    )
    user_id = uuid4()

    response = test_client.post(
        "/transformers/generate",
        json={"userId": str(user_id), "goal": "Run a 5K and read 12 books this year"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["goalType"] == "multi"
    assert body["preview"] is None
    assert [preview["suiteIndex"] for preview in body["previews"]] == [0, 1]
    assert {preview["suiteId"] for preview in body["previews"]} == {body["suiteId"]}
    assert body["previews"][1]["goal"]["parsed"]["synergies"] == ["Audiobooks on easy runs"]

    db = session_factory()
    try:
        rows = db.query(Transformer).order_by(Transformer.suite_index).all()
        assert [row.suite_index for row in rows] == [0, 1]
        assert {str(row.suite_id) for row in rows} == {body["suiteId"]}
        assert db.get(User, user_id).generations_this_month == 1
    finally:
        db.close()


def test_generate_without_provider_returns_503(client) -> None:
    test_client, session_factory, llm_holder = client
    llm_holder["llm"] = FakeLanguageModel(configured=False)

    response = test_client.post("/transformers/generate", json={"userId": str(uuid4()), "goal": "Run a 5K"})

    assert response.status_code == 503
    assert response.json()["detail"] == "AI generation is temporarily unavailable. Please try again later."
    db = session_factory()
    try:
        assert db.query(Transformer).count() == 0
    finally:
        db.close()


def test_generate_with_garbage_reply_returns_502(client) -> None:
    test_client, _, llm_holder = client
    llm_holder["llm"] = FakeLanguageModel(parse=[{"goalType": "single"}], generate=["not a plan"])

    response = test_client.post("/transformers/generate", json={"userId": str(uuid4()), "goal": "Run a 5K"})

    assert response.status_code == 502
    assert response.json()["detail"] == "AI returned an invalid response. Please try again."


def test_generate_rejects_short_goal(client) -> None:
    test_client, _, _ = client

    response = test_client.post("/transformers/generate", json={"userId": str(uuid4()), "goal": "  run "})

    assert response.status_code == 422


def test_clarify_returns_questions_or_proceeds(client) -> None:
    test_client, _, llm_holder = client
    llm_holder["llm"] = FakeLanguageModel(
        parse=[{"goalType": "single", "intent": "fitness"}],
        clarify=[
            {
                "needsClarification": True,
                "questions": [{"question": "How fit are you today?", "why": "Sets the starting load"}],
                "reasoning": "Fitness baseline unknown",
            }
        ],
    )

    asked = test_client.post("/transformers/clarify", json={"userId": str(uuid4()), "goal": "Get in shape"})

    llm_holder["llm"] = FakeLanguageModel(configured=False)
    skipped = test_client.post("/transformers/clarify", json={"userId": str(uuid4()), "goal": "Get in shape"})

    assert asked.status_code == 200
    assert asked.json()["needsClarification"] is True
    assert asked.json()["questions"][0]["question"] == "How fit are you today?"
    assert skipped.status_code == 200
    assert skipped.json()["needsClarification"] is False
    assert skipped.json()["questions"] == []


def test_get_transformer_checks_ownership(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)

    found = test_client.get(f"/transformers/{transformer_id}", params={"user_id": str(user_id)})
    missing = test_client.get(f"/transformers/{uuid4()}", params={"user_id": str(user_id)})
    foreign = test_client.get(f"/transformers/{transformer_id}", params={"user_id": str(uuid4())})

    assert found.status_code == 200
    assert found.json()["id"] == str(transformer_id)
    assert missing.status_code == 404
    assert foreign.status_code == 403


def test_direct_edit_of_preview_plan(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)

    response = test_client.put(
        f"/transformers/{transformer_id}",
        json={
            "userId": str(user_id),
            "name": "Couch to 5K",
            "phases": [{"name": "Only phase", "durationDays": 21, "habits": [habit_payload("Walk")]}],
        },
    )
    flat_edit = test_client.put(
        f"/transformers/{transformer_id}",
        json={"userId": str(user_id), "habits": [habit_payload("Walk")]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["system"]["name"] == "Couch to 5K"
    assert [phase["name"] for phase in body["system"]["phases"]] == ["Only phase"]
    assert body["generation"]["userEditsBeforeApply"] == 1
    assert flat_edit.status_code == 400


def test_refine_preview_plan_until_budget_is_spent(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    rename = {
        "patches": [{"op": "modifyHabit", "phase": 0, "habitIndex": 0, "fields": {"name": "Easy jog"}}],
        "assistantMessage": "Renamed your first habit.",
    }
    llm_holder["llm"] = FakeLanguageModel(refine=[rename] * 5)
    url = f"/transformers/{transformer_id}/refine"

    first = test_client.post(url, json={"userId": str(user_id), "message": "Make the run gentler"})
    assert first.status_code == 200
    body = first.json()
    assert body["assistantMessage"] == "Renamed your first habit."
    assert body["patchesApplied"] == 1
    assert body["turnsRemaining"] == 4
    assert body["transformer"]["system"]["phases"][0]["habits"][0]["name"] == "Easy jog"
    assert [turn["role"] for turn in body["transformer"]["refinements"]] == ["user", "assistant"]
    assert body["transformer"]["refinements"][0]["phasesSnapshot"][0]["habits"][0]["name"] == "Run"

    for _ in range(4):
        assert test_client.post(url, json={"userId": str(user_id), "message": "Again please"}).status_code == 200

    exhausted = test_client.post(url, json={"userId": str(user_id), "message": "One more"})
    assert exhausted.status_code == 400
    assert exhausted.json()["detail"] == "Maximum refinement turns reached."
    assert len(llm_holder["llm"].calls_of("refine")) == 5


def test_apply_materializes_phase_habits(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)

    response = test_client.post(f"/transformers/{transformer_id}/apply", json={"userId": str(user_id)})
    again = test_client.post(f"/transformers/{transformer_id}/apply", json={"userId": str(user_id)})
    edit = test_client.put(f"/transformers/{transformer_id}", json={"userId": str(user_id), "name": "Too late"})

    assert response.status_code == 200
    body = response.json()
    assert body["transformer"]["status"] == "active"
    assert len(body["habitIds"]) == 4
    assert body["activeHabits"] == 2
    assert sorted(body["transformer"]["appliedResources"]["habitIds"]) == sorted(body["habitIds"])
    assert again.status_code == 409
    assert edit.status_code == 409

    habits = {habit.name: habit for habit in _habits(session_factory, transformer_id)}
    assert habits["Run"].is_active is True
    assert habits["Run"].frequency == "weekly"
    assert habits["Run"].weekly_target == 4
    assert habits["Run"].target_unit == "miles"
    assert habits["Push-ups"].target_unit == "custom"
    assert habits["Push-ups"].custom_unit == "reps"
    assert habits["Long run"].is_active is False
    assert habits["Long run"].transformer_phase_index == 1
    assert habits["Long run"].schedule_days == [2, 6]
    assert habits["Long run"].weekly_target == 2
    assert habits["Stretch"].target_unit == "times"
    assert habits["Stretch"].target_value == 10
    assert all(habit.source == "transformer" for habit in habits.values())


def test_advance_phase_activates_next_habits_and_completes(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    payload = {"userId": str(user_id)}
    test_client.post(f"/transformers/{transformer_id}/apply", json=payload)

    first = test_client.post(f"/transformers/{transformer_id}/advance-phase", json=payload)
    progress = test_client.get(f"/transformers/{transformer_id}/progress", params={"user_id": str(user_id)})
    second = test_client.post(f"/transformers/{transformer_id}/advance-phase", json=payload)
    third = test_client.post(f"/transformers/{transformer_id}/advance-phase", json=payload)

    assert first.status_code == 200
    assert first.json()["completed"] is False
    assert first.json()["currentPhaseIndex"] == 1
    assert all(habit.is_active for habit in _habits(session_factory, transformer_id))

    assert progress.status_code == 200
    assert [phase["status"] for phase in progress.json()["phases"]] == ["completed", "active"]
    assert progress.json()["overallCompletion"] == 50
    assert progress.json()["phases"][1]["habits"][0]["name"] == "Long run"

    assert second.json()["completed"] is True
    assert second.json()["transformer"]["status"] == "completed"
    assert third.status_code == 409


def test_archive_cascade_archives_linked_habits(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    test_client.post(f"/transformers/{transformer_id}/apply", json={"userId": str(user_id)})

    response = test_client.post(
        f"/transformers/{transformer_id}/archive",
        json={"userId": str(user_id), "mode": "cascade"},
    )
    again = test_client.post(f"/transformers/{transformer_id}/archive", json={"userId": str(user_id)})

    assert response.status_code == 200
    assert response.json()["habitsArchived"] == 4
    assert response.json()["transformer"]["status"] == "archived"
    assert all(habit.is_archived and not habit.is_active for habit in _habits(session_factory, transformer_id))
    assert again.status_code == 409


def test_archive_preview_keeps_nothing_to_cascade(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)

    response = test_client.post(
        f"/transformers/{transformer_id}/archive",
        json={"userId": str(user_id), "mode": "cascade"},
    )

    assert response.status_code == 200
    assert response.json()["habitsArchived"] == 0


def test_active_refinement_updates_tracked_habits(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    test_client.post(f"/transformers/{transformer_id}/apply", json={"userId": str(user_id)})
    llm_holder["llm"] = FakeLanguageModel(
        refine=[
            {
                "patches": [
                    {"op": "modifyHabit", "phase": 0, "habitIndex": 0, "fields": {"name": "Easy jog"}},
                    {"op": "removeHabit", "phase": 0, "habitIndex": 1},
                    {"op": "addHabit", "phase": 1, "habit": habit_payload("Foam roll")},
                ],
                "assistantMessage": "Lighter start, more recovery later.",
            }
        ]
    )

    response = test_client.post(
        f"/transformers/{transformer_id}/refine",
        json={"userId": str(user_id), "message": "I'm sore, ease off"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["patchesApplied"] == 3
    assert body["transformer"]["status"] == "active"
    assert body["transformer"]["generation"]["userEditsBeforeApply"] == 0
    assert len(body["transformer"]["appliedResources"]["habitIds"]) == 5
    assert "The user is currently in phase 0." in llm_holder["llm"].calls_of("refine")[0]["user"]

    habits = {habit.name: habit for habit in _habits(session_factory, transformer_id)}
    assert "Run" not in habits
    assert habits["Easy jog"].is_active is True
    assert habits["Push-ups"].is_archived is True
    assert habits["Foam roll"].transformer_phase_index == 1
    assert habits["Foam roll"].is_active is False


def _apply(test_client, transformer_id: UUID, user_id: UUID) -> None:
    response = test_client.post(f"/transformers/{transformer_id}/apply", json={"userId": str(user_id)})
    assert response.status_code == 200


def _refine(test_client, llm_holder, transformer_id: UUID, user_id: UUID, patches: list) -> dict:
    llm_holder["llm"] = FakeLanguageModel(refine=[{"patches": patches, "assistantMessage": "Updated."}])
    response = test_client.post(
        f"/transformers/{transformer_id}/refine",
        json={"userId": str(user_id), "message": "Change the phases"},
    )
    assert response.status_code == 200
    return response.json()


def _habit_state(session_factory, transformer_id: UUID) -> dict:
    return {
        habit.name: (habit.transformer_phase_index, habit.is_active, habit.is_archived)
        for habit in _habits(session_factory, transformer_id)
    }


def test_removing_current_phase_of_active_plan_moves_habits_along(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)

    body = _refine(test_client, llm_holder, transformer_id, user_id, [{"op": "removePhase", "phase": 0}])

    assert [phase["name"] for phase in body["transformer"]["system"]["phases"]] == ["Phase 2"]
    assert body["transformer"]["progress"]["currentPhaseIndex"] == 0
    assert _habit_state(session_factory, transformer_id) == {
        "Run": (0, False, True),
        "Push-ups": (0, False, True),
        "Long run": (0, True, False),
        "Stretch": (0, True, False),
    }

    advance = test_client.post(f"/transformers/{transformer_id}/advance-phase", json={"userId": str(user_id)})

    assert advance.json()["completed"] is True


def test_removing_a_later_phase_archives_only_its_habits(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)

    body = _refine(test_client, llm_holder, transformer_id, user_id, [{"op": "removePhase", "phase": 1}])

    assert body["transformer"]["progress"]["currentPhaseIndex"] == 0
    state = _habit_state(session_factory, transformer_id)
    assert state["Run"] == (0, True, False)
    assert state["Long run"] == (1, False, True)


def test_adding_a_phase_in_front_keeps_the_user_in_their_phase(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)

    body = _refine(
        test_client,
        llm_holder,
        transformer_id,
        user_id,
        [{"op": "addPhase", "afterIndex": -1, "phase": {"name": "Warm up", "habits": [habit_payload("Walk")]}}],
    )

    assert [phase["name"] for phase in body["transformer"]["system"]["phases"]] == ["Warm up", "Phase 1", "Phase 2"]
    assert body["transformer"]["progress"]["currentPhaseIndex"] == 1
    assert len(body["transformer"]["appliedResources"]["habitIds"]) == 5
    state = _habit_state(session_factory, transformer_id)
    assert state["Walk"] == (0, True, False)
    assert state["Run"] == (1, True, False)
    assert state["Long run"] == (2, False, False)

    advance = test_client.post(f"/transformers/{transformer_id}/advance-phase", json={"userId": str(user_id)})

    assert advance.json()["currentPhaseIndex"] == 2
    assert _habit_state(session_factory, transformer_id)["Long run"] == (2, True, False)


def test_adding_the_next_phase_delays_later_habits(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)

    _refine(
        test_client,
        llm_holder,
        transformer_id,
        user_id,
        [{"op": "addPhase", "afterIndex": 0, "phase": {"name": "Bridge", "habits": [habit_payload("Walk")]}}],
    )
    advance = test_client.post(f"/transformers/{transformer_id}/advance-phase", json={"userId": str(user_id)})

    assert advance.json()["currentPhaseIndex"] == 1
    state = _habit_state(session_factory, transformer_id)
    assert state["Walk"] == (1, True, False)
    assert state["Long run"] == (2, False, False)
    assert state["Stretch"] == (2, False, False)


def test_moving_and_scaling_habits_update_tracked_habits(client) -> None:
    test_client, session_factory, llm_holder = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)

    body = _refine(
        test_client,
        llm_holder,
        transformer_id,
        user_id,
        [
            {"op": "moveHabit", "fromPhase": 1, "habitIndex": 0, "toPhase": 0},
            {"op": "moveHabit", "fromPhase": 0, "habitIndex": 1, "toPhase": 1},
            {"op": "scaleHabit", "habitName": "Run", "target": {"value": 5, "unit": "miles"}},
        ],
    )

    assert body["patchesApplied"] == 5
    state = _habit_state(session_factory, transformer_id)
    assert state["Long run"] == (0, True, False)
    assert state["Push-ups"] == (1, False, False)
    habits = {habit.name: habit for habit in _habits(session_factory, transformer_id)}
    assert habits["Run"].target_value == 5
    assert habits["Run"].target_unit == "miles"


def _store_listed_plan(session_factory, user_id: UUID, status: str, suite_id=None, suite_index=None) -> UUID:
    db = session_factory()
    try:
        get_or_create_user(db, user_id)
        plan = TransformerPlan(
            user_id=str(user_id),
            goal=Goal(text=f"Goal {status} {suite_index}"),
            system=sanitize_system(system_payload()),
            status=status,
        )
        row = Transformer(user_id=user_id, suite_id=suite_id, suite_index=suite_index, suite_name="Suite")
        save_plan(db, row, plan)
        db.commit()
        db.refresh(row)
        return row.id
    finally:
        db.close()


def test_list_transformers_orders_suites_and_hides_archived(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    suite_id = uuid4()
    second = _store_listed_plan(session_factory, user_id, "preview", suite_id, 1)
    first = _store_listed_plan(session_factory, user_id, "preview", suite_id, 0)
    standalone = _store_listed_plan(session_factory, user_id, "active")
    archived = _store_listed_plan(session_factory, user_id, "archived")
    _store_listed_plan(session_factory, uuid4(), "preview")

    default = test_client.get("/transformers", params={"user_id": str(user_id)})
    only_archived = test_client.get("/transformers", params={"user_id": str(user_id), "status": "archived"})
    several = test_client.get(
        "/transformers",
        params=[("user_id", str(user_id)), ("status", "archived"), ("status", "active")],
    )

    assert default.status_code == 200
    assert [plan["id"] for plan in default.json()["transformers"]] == [str(standalone), str(first), str(second)]
    assert [plan["suiteIndex"] for plan in default.json()["transformers"]] == [None, 0, 1]
    assert [plan["id"] for plan in only_archived.json()["transformers"]] == [str(archived)]
    assert {plan["id"] for plan in several.json()["transformers"]} == {str(archived), str(standalone)}


def test_list_transformers_rejects_unknown_status(client) -> None:
    test_client, _, _ = client

    response = test_client.get("/transformers", params={"user_id": str(uuid4()), "status": "deleted"})

    assert response.status_code == 422


def test_archive_delete_habits_removes_habits_and_entries(client) -> None:
    test_client, session_factory, _ = client
    user_id = uuid4()
    transformer_id = _store_plan(session_factory, user_id)
    _apply(test_client, transformer_id, user_id)
    db = session_factory()
    try:
        run = db.query(Habit).filter(Habit.transformer_id == transformer_id, Habit.name == "Run").one()
        db.add(HabitEntry(user_id=user_id, habit_id=run.id, entry_date=date(2026, 10, 18), completed=True))
        db.commit()
    finally:
        db.close()

    response = test_client.post(
        f"/transformers/{transformer_id}/archive",
        json={"userId": str(user_id), "mode": "delete_habits"},
    )

    assert response.status_code == 200
    assert response.json()["habitsDeleted"] == 4
    assert response.json()["habitsArchived"] == 0
    assert response.json()["transformer"]["appliedResources"]["habitIds"] == []
    assert _habits(session_factory, transformer_id) == []
    db = session_factory()
    try:
        assert db.query(HabitEntry).count() == 0
    finally:
        db.close()


def test_transformer_response_keeps_turns_remaining_method() -> None:
    plan = TransformerPlan(goal=Goal(text="Run a 5K"), system=sanitize_system(system_payload()))
    document = plan.to_document()
    document.update({"id": str(uuid4()), "turnsRemaining": 3})

    response = TransformerResponse.model_validate(document)

    assert response.turns_left == 3
    assert response.turns_remaining(5) == 5
    assert response.model_dump(by_alias=True)["turnsRemaining"] == 3
