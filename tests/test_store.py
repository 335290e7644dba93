"""Tests for the habit/progress store."""

import asyncio
from datetime import timedelta

from habitsync.api.errors import ServerError
from habitsync.store.state import HabitState, StoreStatus

from conftest import TODAY, USER, make_habit


def messages(notifier, level="error"):
    return [item.message for item in notifier.recent() if item.level == level]


async def test_session_start_loads_both_collections(backend, session, store):
    backend.habits = [make_habit(1, "Water"), make_habit(2, "Read")]

    await session.sign_in(USER["email"], "secret")
    await store.session_sync

    assert [habit.name for habit in store.state.habits] == ["Water", "Read"]
    assert [entry.habit.id for entry in store.state.today_progress] == [1, 2]
    assert store.state.status == StoreStatus.READY


async def test_session_end_clears_both_collections(backend, session, signed_in_store):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()

    await session.sign_out()

    assert signed_in_store.state == HabitState()


async def test_toggle_today_patches_entry_then_refreshes_streak(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water", current_streak=2)]
    await signed_in_store.sync()
    assert signed_in_store.state.today_entry(1).completed is False

    result = await signed_in_store.toggle_habit_completion(1)

    assert result.ok
    assert result.data.completed is True
    assert signed_in_store.state.today_entry(1).completed is True

    await result.refresh
    assert signed_in_store.state.habit(1).current_streak == 3
    assert backend.requests[-2][2] == {"habitId": 1, "date": TODAY.isoformat()}


async def test_toggle_does_not_wait_for_the_habit_refresh(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water", current_streak=2)]
    await signed_in_store.sync()

    result = await signed_in_store.toggle_habit_completion(1)

    assert not result.refresh.done()
    assert signed_in_store.state.habit(1).current_streak == 2
    await result.refresh
    assert signed_in_store.state.habit(1).current_streak == 3


async def test_toggle_other_day_leaves_today_entries_alone(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    before = signed_in_store.state.today_progress

    result = await signed_in_store.toggle_habit_completion(1, TODAY - timedelta(days=1))
    await result.refresh

    assert result.data.completed is True
    assert signed_in_store.state.today_progress == before
    assert backend.requests[-2][2]["date"] == "2026-10-18"


async def test_streak_comes_from_the_server(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water", current_streak=2)]
    await signed_in_store.sync()

    result = await signed_in_store.toggle_habit_completion(1)
    # The server decides the streak, whatever it is
    backend.habits[0]["current_streak"] = 40
    backend.habits[0]["longest_streak"] = 40
    await result.refresh

    assert signed_in_store.state.habit(1).current_streak == 40


async def test_create_failure_keeps_cache_and_reports_server_message(
    backend, signed_in_store, notifier
):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    before = signed_in_store.state.habits
    backend.fail("POST", "/habits", status=409, body={"message": "name taken"})

    result = await signed_in_store.create_habit({"name": "Read"})

    assert not result.ok
    assert result.data is None
    assert isinstance(result.error, ServerError)
    assert signed_in_store.state.habits == before
    assert messages(notifier) == ["name taken"]


async def test_create_appends_and_reloads_today(backend, signed_in_store, notifier):
    result = await signed_in_store.create_habit({"name": "Read", "emoji": "📚"})

    assert result.ok
    assert [habit.name for habit in signed_in_store.state.habits] == ["Read"]
    await result.refresh
    assert [entry.habit.name for entry in signed_in_store.state.today_progress] == ["Read"]
    assert messages(notifier, "success") == ["Habit created successfully!"]


async def test_update_replaces_in_place(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water"), make_habit(2, "Read"), make_habit(3, "Walk")]
    await signed_in_store.sync()

    result = await signed_in_store.update_habit(2, {"name": "Read 20 pages"})

    assert result.ok
    assert [habit.name for habit in signed_in_store.state.habits] == [
        "Water",
        "Read 20 pages",
        "Walk",
    ]


async def test_delete_removes_and_reloads_today(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water"), make_habit(2, "Read")]
    await signed_in_store.sync()

    result = await signed_in_store.delete_habit(1)
    await result.refresh

    assert [habit.id for habit in signed_in_store.state.habits] == [2]
    assert [entry.habit.id for entry in signed_in_store.state.today_progress] == [2]


async def test_failed_delete_leaves_cache(backend, signed_in_store, notifier):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    backend.fail("DELETE", "/habits/1", status=500)

    result = await signed_in_store.delete_habit(1)

    assert not result.ok
    assert result.refresh is None
    assert [habit.id for habit in signed_in_store.state.habits] == [1]
    assert messages(notifier) == ["Failed to delete habit"]


async def test_failed_toggle_leaves_today_entry(backend, signed_in_store, notifier):
    backend.habits = [make_habit(1, "Water", current_streak=2)]
    await signed_in_store.sync()
    before = signed_in_store.state.today_progress
    backend.fail("POST", "/progress/toggle", status=500)

    result = await signed_in_store.toggle_habit_completion(1)

    assert not result.ok
    assert result.data is None
    assert result.refresh is None
    assert signed_in_store.state.today_progress == before
    assert signed_in_store.state.habit(1).current_streak == 2
    assert messages(notifier) == ["Failed to update progress"]


async def test_failed_update_leaves_cache(backend, signed_in_store, notifier):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    before = signed_in_store.state.habits
    backend.fail("PUT", "/habits/1", status=500)

    result = await signed_in_store.update_habit(1, {"name": "Drink water"})

    assert not result.ok
    assert result.data is None
    assert signed_in_store.state.habits == before
    assert messages(notifier) == ["Failed to update habit"]


async def test_string_ids_match_numeric_lookups(backend, signed_in_store):
    backend.habits = [make_habit("5", "Water"), make_habit("6", "Read")]
    await signed_in_store.sync()

    toggled = await signed_in_store.toggle_habit_completion(5)
    await toggled.refresh
    assert signed_in_store.state.today_entry(5).completed is True

    result = await signed_in_store.delete_habit(5)
    await result.refresh

    assert [habit.id for habit in signed_in_store.state.habits] == ["6"]


async def test_successful_mutations_replay_membership(backend, signed_in_store):
    first = await signed_in_store.create_habit({"name": "Water"})
    second = await signed_in_store.create_habit({"name": "Read"})
    await signed_in_store.update_habit(first.data.id, {"name": "Drink water"})
    await signed_in_store.delete_habit(second.data.id)
    await signed_in_store.create_habit({"name": "Walk"})
    await signed_in_store.wait_idle()

    assert [habit.name for habit in signed_in_store.state.habits] == ["Drink water", "Walk"]


async def test_fetch_failure_keeps_previous_habits(backend, signed_in_store, notifier):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    backend.break_connection("GET", "/habits")

    loaded = await signed_in_store.fetch_habits()

    assert loaded is False
    assert signed_in_store.state.status == StoreStatus.ERROR
    assert [habit.name for habit in signed_in_store.state.habits] == ["Water"]
    assert messages(notifier) == ["Failed to load habits"]


async def test_unreadable_habits_response_is_a_load_failure(
    backend, signed_in_store, notifier
):
    backend.habits = [make_habit(1, "Water")]
    await signed_in_store.sync()
    backend.answer("GET", "/habits", b"<html>proxy</html>")

    loaded = await signed_in_store.fetch_habits()

    assert loaded is False
    assert signed_in_store.state.status == StoreStatus.ERROR
    assert [habit.name for habit in signed_in_store.state.habits] == ["Water"]
    assert messages(notifier) == ["Failed to load habits"]


async def test_malformed_today_entries_fail_the_session_load(
    backend, session, store, notifier
):
    backend.answer("GET", "/progress/today", b'[{"habit": {"id": 1}, "completed": false}]')

    await session.sign_in(USER["email"], "secret")
    await store.session_sync

    assert store.session_sync.exception() is None
    assert store.state.today_progress == ()
    assert messages(notifier) == ["Failed to load today's progress"]


async def test_error_status_clears_on_next_success(backend, signed_in_store):
    backend.fail("GET", "/progress/today", status=500)
    await signed_in_store.fetch_today_progress()
    assert signed_in_store.state.status == StoreStatus.ERROR

    backend.failures.clear()
    await signed_in_store.fetch_today_progress()

    assert signed_in_store.state.status == StoreStatus.READY
    assert signed_in_store.state.error is None


async def test_nothing_happens_without_session(backend, store):
    results = [
        await store.create_habit({"name": "Read"}),
        await store.update_habit(1, {"name": "x"}),
        await store.delete_habit(1),
        await store.toggle_habit_completion(1),
        await store.delete_progress(5),
    ]

    assert all(result.skipped and not result.ok for result in results)
    assert await store.fetch_habits() is False
    assert await store.fetch_today_progress() is False
    assert backend.requests == []
    assert store.state == HabitState()


async def test_delete_progress_reloads_everything(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water", current_streak=1)]
    backend.progress = [
        {"id": 9, "habit_id": 1, "date": TODAY.isoformat(), "completed": True}
    ]
    await signed_in_store.sync()
    assert signed_in_store.state.today_entry(1).completed is True

    result = await signed_in_store.delete_progress(9)
    await result.refresh

    assert signed_in_store.state.today_entry(1).completed is False


async def test_results_after_sign_out_are_discarded(backend, session, signed_in_store):
    backend.habits = [make_habit(1, "Water")]
    gate = asyncio.Event()
    original = backend._route

    async def slow_route(request, path, body):
        if path == "/habits":
            await gate.wait()
        return await original(request, path, body)

    backend._route = slow_route

    pending = asyncio.ensure_future(signed_in_store.fetch_habits())
    await asyncio.sleep(0)
    await session.sign_out()
    gate.set()

    assert await pending is False
    assert signed_in_store.state == HabitState()


async def test_subscribers_see_each_snapshot(backend, signed_in_store):
    backend.habits = [make_habit(1, "Water")]
    seen = []
    unsubscribe = signed_in_store.subscribe(lambda state: seen.append(state.status))

    await signed_in_store.fetch_habits()
    unsubscribe()
    await signed_in_store.fetch_habits()

    assert seen == [StoreStatus.LOADING, StoreStatus.READY]
