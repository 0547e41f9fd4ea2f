"""Tests for concurrent batch runs."""

import pytest

from conftest import FakeGenerator, motion_reply

from edudesign.config import FailurePolicy, PipelineConfig
from edudesign.errors import BatchError, GenerationError
from edudesign.models import MotionSpec, PageContext, Reply, Unit
from edudesign.orchestrator import Orchestrator


def units(count: int) -> list[Unit]:
    return [Unit(ordinal=n, prompt=f"p{n}", context=PageContext(page_number=n)) for n in range(1, count + 1)]


def replies(count: int) -> dict[str, str]:
    return {f"p{n}": motion_reply(n) for n in range(1, count + 1)}


@pytest.mark.asyncio
async def test_results_follow_ordinals_not_completion_order() -> None:
    generator = FakeGenerator(replies(3), delays={"p1": 0.05, "p2": 0.0, "p3": 0.02})
    results = await Orchestrator(generator, "motion").run_batch(units(3))

    assert generator.completed == ["p2", "p3", "p1"]
    assert [result.ordinal for result in results] == [1, 2, 3]
    assert [result.first(MotionSpec).animation_description for result in results] == ["anim 1", "anim 2", "anim 3"]


@pytest.mark.asyncio
async def test_declared_ordinals_win_over_input_order() -> None:
    generator = FakeGenerator(replies(3))
    shuffled = [units(3)[2], units(3)[0], units(3)[1]]
    results = await Orchestrator(generator, "motion").run_batch(shuffled)
    assert [result.ordinal for result in results] == [1, 2, 3]


@pytest.mark.asyncio
async def test_fail_fast_cancels_siblings() -> None:
    generator = FakeGenerator(
        replies(3),
        delays={"p1": 0.0, "p2": 0.01, "p3": 1.0},
        failures={"p2": RuntimeError("provider down")},
    )
    orchestrator = Orchestrator(generator, "motion", policy=FailurePolicy.FAIL_FAST)

    with pytest.raises(BatchError) as excinfo:
        await orchestrator.run_batch(units(3))

    assert excinfo.value.ordinal == 2
    [error] = excinfo.value.errors
    assert isinstance(error, GenerationError)
    assert str(error.cause) == "provider down"
    assert "p3" not in generator.completed


@pytest.mark.asyncio
async def test_isolate_degrades_failing_unit() -> None:
    generator = FakeGenerator(replies(3), failures={"p2": RuntimeError("timeout")})
    results = await Orchestrator(generator, "motion", policy="isolate").run_batch(units(3))

    assert [result.ordinal for result in results] == [1, 2, 3]
    assert [result.used_fallback for result in results] == [False, True, False]
    assert results[1].error == "timeout"
    assert results[1].diagnostics[0].startswith("fallback used")
    assert results[1].first(MotionSpec) is not None
    assert results[0].error is None


@pytest.mark.asyncio
async def test_empty_batch() -> None:
    assert await Orchestrator(FakeGenerator({}), "layout").run_batch([]) == []


@pytest.mark.asyncio
async def test_layout_batch_falls_back_per_unit(layout_reply: str) -> None:
    generator = FakeGenerator({"p1": layout_reply, "p2": "I could not produce a layout."})
    results = await Orchestrator(generator, "layout").run_batch(units(2))
    assert [result.used_fallback for result in results] == [False, True]


def test_parse_batch_orders_replies(layout_reply: str) -> None:
    orchestrator = Orchestrator(None, "layout")
    results = orchestrator.parse_batch([
        Reply(ordinal=2, text="garbage", context=PageContext(index=1, total=2)),
        Reply(ordinal=1, text=layout_reply),
    ])
    assert [result.ordinal for result in results] == [1, 2]
    assert [result.used_fallback for result in results] == [False, True]


def test_unknown_stage() -> None:
    with pytest.raises(KeyError):
        Orchestrator(FakeGenerator({}), "storyboard")


@pytest.mark.asyncio
async def test_batch_error_reports_lowest_failing_ordinal() -> None:
    generator = FakeGenerator(
        replies(3),
        failures={"p1": RuntimeError("quota"), "p3": RuntimeError("provider down")},
    )
    with pytest.raises(BatchError) as excinfo:
        await Orchestrator(generator, "motion").run_batch(list(reversed(units(3))))

    ordinals = [error.ordinal for error in excinfo.value.errors]
    assert ordinals == sorted(ordinals)
    assert excinfo.value.ordinal == ordinals[0]


@pytest.mark.asyncio
async def test_policy_defaults_to_config() -> None:
    generator = FakeGenerator(replies(2), failures={"p2": RuntimeError("timeout")})
    orchestrator = Orchestrator(generator, "motion", config=PipelineConfig(failure_policy=FailurePolicy.ISOLATE))

    assert orchestrator.policy is FailurePolicy.ISOLATE
    results = await orchestrator.run_batch(units(2))
    assert [result.used_fallback for result in results] == [False, True]


def test_explicit_policy_wins_over_config() -> None:
    orchestrator = Orchestrator(None, "motion", policy="fail_fast", config=PipelineConfig(failure_policy="isolate"))
    assert orchestrator.policy is FailurePolicy.FAIL_FAST
