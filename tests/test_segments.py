from __future__ import annotations

from datetime import timedelta

from output.segments import NUDGE_LARGE, NUDGE_SMALL, Segment, SegmentStore


def ms(value: int) -> timedelta:
    return timedelta(milliseconds=value)


def _store() -> SegmentStore:
    return SegmentStore(
        [
            Segment(ms(2000), ms(3000), "two"),
            Segment(ms(0), ms(1000), "zero"),
            Segment(ms(1000), ms(1500), "one"),
        ]
    )


def test_store_is_sorted_by_start() -> None:
    assert [s.text for s in _store()] == ["zero", "one", "two"]


def test_nudge_without_selection_is_noop() -> None:
    store = _store()
    assert not store.nudge_selected(NUDGE_SMALL)
    assert store[0].start == ms(0)


def test_nudge_shifts_both_bounds() -> None:
    store = _store()
    store.select(1)
    assert store.nudge_selected(NUDGE_LARGE)
    assert (store.selected.start, store.selected.end) == (ms(1500), ms(2000))


def test_nudge_clamps_at_zero() -> None:
    store = SegmentStore([Segment(ms(50), ms(300), "x")])
    store.select(0)
    store.nudge_selected(-NUDGE_SMALL)
    assert (store[0].start, store[0].end) == (ms(0), ms(200))
    store.nudge_selected(-NUDGE_LARGE)
    assert (store[0].start, store[0].end) == (ms(0), ms(0))


def test_nudge_past_neighbour_resorts_and_keeps_selection() -> None:
    store = _store()
    store.select(0)
    store.nudge_selected(timedelta(seconds=5))
    assert [s.text for s in store] == ["one", "two", "zero"]
    assert store.selected.text == "zero"
    assert store.index_of_selected() == 2


def test_active_at_inclusive_bounds() -> None:
    store = SegmentStore([Segment(ms(1000), ms(2000), "a")])
    assert store.active_at(1.0).text == "a"
    assert store.active_at(ms(2000)).text == "a"
    assert store.active_at(0.999) is None
    assert store.active_at(2.001) is None


def test_active_at_prefers_first_on_overlap() -> None:
    store = SegmentStore(
        [
            Segment(ms(0), ms(5000), "long"),
            Segment(ms(1000), ms(2000), "short"),
        ]
    )
    assert store.active_at(1.5).text == "long"


def test_active_at_in_gap_is_none() -> None:
    assert _store().active_at(1.75) is None


def test_retime_selected_ignores_invalid_text() -> None:
    store = _store()
    store.select(0)
    assert store.retime_selected("00:00:00.250", "bogus")
    assert (store.selected.start, store.selected.end) == (ms(250), ms(1000))
    assert not store.retime_selected("bogus", None)


def test_replace_clears_selection() -> None:
    store = _store()
    store.select(0)
    store.replace([Segment(ms(0), ms(1), "new")])
    assert store.selected is None
    assert len(store) == 1


def test_retime_rejects_start_after_end() -> None:
    store = _store()
    store.select(0)
    assert not store.retime_selected("00:00:01.500", None)
    assert (store.selected.start, store.selected.end) == (ms(0), ms(1000))
    assert store.retime_selected("00:00:00.000", "00:00:00.000")
    assert (store.selected.start, store.selected.end) == (ms(0), ms(0))


def test_retime_can_move_both_bounds_past_old_end() -> None:
    store = _store()
    store.select(0)
    assert store.retime_selected("00:00:04.000", "00:00:05.000")
    assert [s.text for s in store] == ["one", "two", "zero"]


def test_edit_selected_text() -> None:
    store = _store()
    assert not store.edit_selected_text("nothing selected")
    store.select(2)
    assert store.edit_selected_text("deux")
    assert [s.text for s in store] == ["zero", "one", "deux"]
