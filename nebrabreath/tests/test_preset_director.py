"""Tests for PresetDirector segment decisions."""

import pytest

from nebrabreath.catalog.models import Preset, PresetSegment
from nebrabreath.engine.preset_director import PresetDecision, PresetDirector
from nebrabreath.errors import InvariantViolation


@pytest.fixture
def preset():
    return Preset("ab", (PresetSegment("tech_a", 5), PresetSegment("tech_b", 3)))


class TestPresetDirector:
    def test_begin_returns_first_segment(self, preset):
        director = PresetDirector()
        segment = director.begin(preset)
        assert segment.technique_id == "tech_a"
        assert director.active
        assert director.active_preset_id == "ab"
        assert (director.segment_index, director.segment_start_second) == (0, 0)

    def test_decisions_across_whole_preset(self, preset):
        director = PresetDirector()
        director.begin(preset)
        decisions = [director.on_second(total).decision for total in range(1, 9)]
        assert decisions == [PresetDecision.CONTINUE] * 4 + [PresetDecision.NEXT_SEGMENT] + \
            [PresetDecision.CONTINUE] * 2 + [PresetDecision.FINISHED]
        assert not director.active
        assert director.current_segment is None

    def test_finished_outcome_names_released_preset(self, preset):
        director = PresetDirector()
        director.begin(preset)
        outcomes = [director.on_second(total) for total in range(1, 9)]
        assert outcomes[-1].decision is PresetDecision.FINISHED
        assert outcomes[-1].preset_id == "ab"
        assert director.active_preset_id is None
        assert all(o.preset_id is None for o in outcomes[:-1])

    def test_swap_records_segment_start(self, preset):
        director = PresetDirector()
        director.begin(preset)
        for total in range(1, 5):
            director.on_second(total)
        outcome = director.on_second(5)
        assert outcome.segment_index == 1
        assert outcome.technique_id == "tech_b"
        assert director.segment_start_second == 5
        assert director.elapsed_in_segment(7) == 2

    def test_begin_at_nonzero_second(self, preset):
        director = PresetDirector()
        director.begin(preset, start_second=100)
        assert director.on_second(104).decision is PresetDecision.CONTINUE
        assert director.on_second(105).decision is PresetDecision.NEXT_SEGMENT

    def test_inactive_always_continues(self):
        outcome = PresetDirector().on_second(10)
        assert outcome.decision is PresetDecision.CONTINUE
        assert outcome.technique_id is None

    def test_negative_segment_elapsed_is_invariant_violation(self, preset):
        director = PresetDirector()
        director.begin(preset, start_second=10)
        with pytest.raises(InvariantViolation):
            director.on_second(3)

    def test_cancel_clears_state(self, preset):
        director = PresetDirector()
        director.begin(preset)
        director.on_second(5)
        director.cancel()
        assert director.active_preset_id is None
        assert (director.segment_index, director.segment_start_second) == (0, 0)
