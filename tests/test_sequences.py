"""Tests for machine-state run extraction and time-in-state aggregation.

Ejecutar:
    pytest tests/test_sequences.py -v
"""

from datetime import timedelta

import pytest

from conftest import at, samples
from oee_engine.domain.states import MachineState
from oee_engine.sequences import StateTimeline, extract_state_runs, minutes_in_states

OP = int(MachineState.OPERATING)
STOP = int(MachineState.STOPPED)
TAIL = int(MachineState.TAILBACK)


@pytest.fixture
def state_samples():
    return samples([
        (0, OP), (1, OP), (2, STOP), (3, STOP), (4, OP), (5, TAIL),
    ])


# =============================================================================
# RUN EXTRACTION
# =============================================================================

class TestExtractStateRuns:

    def test_empty_input_gives_no_runs(self):
        assert extract_state_runs([]) == []

    def test_runs_follow_value_changes(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert [r.state for r in runs] == [OP, STOP, OP, TAIL]
        assert [r.start_time for r in runs] == [at(0), at(2), at(4), at(5)]

    def test_runs_are_contiguous(self, state_samples):
        runs = extract_state_runs(state_samples)

        for prev, nxt in zip(runs, runs[1:]):
            assert prev.end_time == nxt.start_time

    def test_last_sample_in_state_is_kept(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert runs[0].last_sample_at == at(1)
        assert runs[1].last_sample_at == at(3)

    def test_final_run_ends_at_final_sample(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert runs[-1].end_time == at(5)
        assert runs[-1].duration_minutes == 0.0

    def test_single_sample_yields_zero_length_run(self):
        runs = extract_state_runs(samples([(0, STOP)]))

        assert len(runs) == 1
        assert runs[0].start_time == runs[0].end_time == at(0)

    def test_constant_state_is_one_run(self):
        runs = extract_state_runs(samples([(m, OP) for m in range(10)]))

        assert len(runs) == 1
        assert runs[0].duration_minutes == pytest.approx(9.0)

    def test_string_values_are_accepted(self):
        runs = extract_state_runs(samples([(0, "128"), (1, "1"), (2, "1")]))

        assert [r.state for r in runs] == [OP, STOP]

    def test_window_filter(self, state_samples):
        runs = extract_state_runs(state_samples, window_start=at(2), window_end=at(4))

        assert [r.state for r in runs] == [STOP, OP]
        assert runs[0].start_time == at(2)


# =============================================================================
# TIME IN STATE
# =============================================================================

class TestMinutesInStates:

    def test_whole_window(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert minutes_in_states(runs, {STOP}, at(0), at(5)) == pytest.approx(2.0)
        assert minutes_in_states(runs, {OP}, at(0), at(5)) == pytest.approx(3.0)

    def test_runs_are_clipped_to_window(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert minutes_in_states(runs, {STOP}, at(0), at(2.5)) == pytest.approx(0.5)
        assert minutes_in_states(runs, {STOP}, at(3), at(10)) == pytest.approx(1.0)

    def test_durations_use_elapsed_time_not_sample_count(self):
        # Sparse samples: one reading per state, 7 minutes apart
        runs = extract_state_runs(samples([(0, STOP), (7, OP), (8, OP)]))

        assert minutes_in_states(runs, {STOP}, at(0), at(8)) == pytest.approx(7.0)

    def test_state_set_union(self, state_samples):
        runs = extract_state_runs(state_samples)

        assert minutes_in_states(runs, {STOP, OP}, at(0), at(5)) == pytest.approx(5.0)


class TestStateTimeline:

    def test_empty_timeline(self):
        assert StateTimeline([]).minutes_in({STOP}, at(0), at(10)) == 0.0

    def test_empty_or_inverted_window(self, state_samples):
        timeline = StateTimeline(extract_state_runs(state_samples))

        assert timeline.minutes_in({OP}, at(3), at(3)) == 0.0
        assert timeline.minutes_in({OP}, at(4), at(3)) == 0.0

    def test_window_before_first_run(self, state_samples):
        timeline = StateTimeline(extract_state_runs(state_samples))

        assert timeline.minutes_in({OP}, at(-10), at(0)) == 0.0

    def test_matches_linear_scan(self):
        # Irregular sequence with many short runs
        codes = [OP, OP, STOP, TAIL, TAIL, OP, STOP, STOP, STOP, OP, TAIL, OP, OP, STOP, OP]
        offsets = [0, 0.5, 1.25, 3, 3.1, 4, 6.5, 7, 9, 9.75, 12, 13.5, 14, 17, 20]
        runs = extract_state_runs(samples(list(zip(offsets, codes))))
        timeline = StateTimeline(runs)

        windows = [(0, 20), (0, 1), (1, 2), (2.2, 9.9), (3, 3.05), (6.5, 17), (10, 25), (-5, 4)]
        for states in ({OP}, {STOP}, {TAIL}, {STOP, TAIL}):
            for lo, hi in windows:
                expected = minutes_in_states(runs, states, at(lo), at(hi))
                assert timeline.minutes_in(states, at(lo), at(hi)) == pytest.approx(expected), (
                    states, lo, hi,
                )

    def test_sub_second_precision(self):
        runs = extract_state_runs(samples([(0, OP), (1, STOP), (2, OP)]))
        timeline = StateTimeline(runs)

        end = at(1) + timedelta(seconds=30)
        assert timeline.minutes_in({STOP}, at(0), end) == pytest.approx(0.5)
