"""同期ループ(1 tick の処理とスケジューリング)のテスト。"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import SAMPLE_OSU, FakeEngine, FakeResponse, FakeSession, state_response
from src.change_detector import build_dedupe_key
from src.sync_loop import SyncContext, TickOutcome, run_forever, run_tick

SCENARIO_STATE = {
    "beatmap": {"artist": "A", "title": "B", "version": "Hard"},
    "play": {"mods": {"rate": 1.5}},
}


def _ctx(tmp_path: Path, routes: dict, engine: FakeEngine | None = None) -> SyncContext:
    return SyncContext(
        session=FakeSession(routes),
        engine=engine or FakeEngine(),
        output_path=tmp_path / "MinaCalcOnOsu" / "msd.json",
    )


def _chart() -> FakeResponse:
    return FakeResponse(200, SAMPLE_OSU.encode("utf-8"))


@pytest.mark.light
def test_scenario_publishes_labels_and_rate(tmp_path: Path):
    ctx = _ctx(
        tmp_path,
        {"/json/v2": state_response(SCENARIO_STATE), "/files/beatmap/file": _chart()},
    )

    assert run_tick(ctx) is TickOutcome.PUBLISHED

    out = json.loads(ctx.output_path.read_text(encoding="utf-8"))
    assert out["rate"] == "1.50"
    assert out["song"] == "A - B"
    assert out["diff"] == "Hard"
    assert out["overall"] == 30.0
    assert ctx.last_key == build_dedupe_key(SAMPLE_OSU.encode("utf-8"), "1.50")


@pytest.mark.light
def test_identical_chart_and_rate_skips_second_engine_call(tmp_path: Path):
    engine = FakeEngine()
    ctx = _ctx(
        tmp_path,
        {"/json/v2": state_response({"play": {"mods": {}}}), "/files/beatmap/file": _chart()},
        engine,
    )

    assert run_tick(ctx) is TickOutcome.PUBLISHED
    mtime = ctx.output_path.stat().st_mtime_ns
    assert run_tick(ctx) is TickOutcome.UNCHANGED

    assert len(engine.calls) == 1
    assert ctx.output_path.stat().st_mtime_ns == mtime


@pytest.mark.light
def test_same_chart_different_rate_recomputes(tmp_path: Path):
    engine = FakeEngine()
    ctx = _ctx(
        tmp_path,
        {
            "/json/v2": [
                state_response({"play": {"mods": {"rate": 1.0}}}),
                state_response({"play": {"mods": {"rate": 1.2}}}),
            ],
            "/files/beatmap/file": _chart(),
        },
        engine,
    )

    assert run_tick(ctx) is TickOutcome.PUBLISHED
    assert run_tick(ctx) is TickOutcome.PUBLISHED
    assert [call[1] for call in engine.calls] == [1.0, 1.2]
    assert json.loads(ctx.output_path.read_text(encoding="utf-8"))["rate"] == "1.20"


@pytest.mark.light
def test_empty_chart_leaves_previous_output_untouched(tmp_path: Path):
    engine = FakeEngine()
    ctx = _ctx(
        tmp_path,
        {
            "/json/v2": state_response(SCENARIO_STATE),
            "/files/beatmap/file": FakeResponse(200, b""),
        },
        engine,
    )
    ctx.output_path.parent.mkdir(parents=True)
    ctx.output_path.write_text('{"song": "previous"}', encoding="utf-8")

    assert run_tick(ctx) is TickOutcome.FETCH_FAILED
    assert ctx.output_path.read_text(encoding="utf-8") == '{"song": "previous"}'
    assert engine.calls == []
    assert ctx.last_key is None


@pytest.mark.light
def test_state_fetch_failure_does_not_fetch_chart(tmp_path: Path):
    ctx = _ctx(tmp_path, {"/json/v2": FakeResponse(500, b"")})
    assert run_tick(ctx) is TickOutcome.FETCH_FAILED
    assert len(ctx.session.calls) == 1
    assert not ctx.output_path.exists()


@pytest.mark.light
def test_compute_failure_keeps_key_so_next_tick_retries(tmp_path: Path):
    engine = FakeEngine(error=RuntimeError("engine down"))
    ctx = _ctx(
        tmp_path,
        {"/json/v2": state_response(SCENARIO_STATE), "/files/beatmap/file": _chart()},
        engine,
    )

    assert run_tick(ctx) is TickOutcome.COMPUTE_FAILED
    assert ctx.last_key is None

    engine.error = None
    assert run_tick(ctx) is TickOutcome.PUBLISHED
    assert len(engine.calls) == 2


@pytest.mark.light
def test_publish_failure_advances_key(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    engine = FakeEngine()
    ctx = SyncContext(
        session=FakeSession(
            {"/json/v2": state_response(SCENARIO_STATE), "/files/beatmap/file": _chart()}
        ),
        engine=engine,
        output_path=blocker / "msd.json",
    )

    assert run_tick(ctx) is TickOutcome.PUBLISH_FAILED
    assert ctx.last_key is not None
    assert run_tick(ctx) is TickOutcome.UNCHANGED
    assert len(engine.calls) == 1


@pytest.mark.light
def test_run_forever_sleeps_remaining_interval_and_survives_errors(tmp_path: Path, monkeypatch):
    ctx = _ctx(tmp_path, {})
    outcomes = []

    def flaky_tick(c):
        if not outcomes:
            outcomes.append("error")
            raise RuntimeError("unexpected")
        outcomes.append("ok")
        return TickOutcome.UNCHANGED

    monkeypatch.setattr("src.sync_loop.run_tick", flaky_tick)

    now = [0.0]
    sleeps = []

    def clock():
        now[0] += 0.1
        return now[0]

    run_forever(ctx, interval_ms=600, sleep=sleeps.append, clock=clock, max_ticks=3)

    assert outcomes == ["error", "ok", "ok"]
    assert sleeps == pytest.approx([0.5, 0.5, 0.5])


@pytest.mark.light
def test_huge_integer_rate_in_state_does_not_break_tick(tmp_path: Path):
    body = b'{"play": {"mods": {"rate": ' + b"9" * 400 + b"}}}"
    ctx = _ctx(tmp_path, {"/json/v2": FakeResponse(200, body), "/files/beatmap/file": _chart()})

    assert run_tick(ctx) is TickOutcome.PUBLISHED
    assert json.loads(ctx.output_path.read_text(encoding="utf-8"))["rate"] == "1.00"


@pytest.mark.light
def test_nan_engine_score_is_compute_failure_and_not_published(tmp_path: Path):
    class NanEngine(FakeEngine):
        def calc_ssr(self, notes, rate, goal):
            result = super().calc_ssr(notes, rate, goal)
            result["overall"] = float("nan")
            return result

    ctx = _ctx(
        tmp_path,
        {"/json/v2": state_response(SCENARIO_STATE), "/files/beatmap/file": _chart()},
        NanEngine(),
    )

    assert run_tick(ctx) is TickOutcome.COMPUTE_FAILED
    assert ctx.last_key is None
    assert not ctx.output_path.exists()
