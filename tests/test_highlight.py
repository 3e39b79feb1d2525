"""Tests for match highlighting."""
from src.highlight import highlight_matches


class TestHighlightMatches:
    def test_single_match(self):
        h = highlight_matches("Team meeting", "meet")
        assert h.match_count == 1
        assert h.matches[0].start == 5
        assert h.matches[0].end == 9
        assert h.matches[0].text == "meet"
        assert h.highlighted == "Team <mark>meet</mark>ing"

    def test_every_match_is_wrapped(self):
        h = highlight_matches("Meet and meet again, MEET", "meet")
        assert h.match_count == 3
        assert h.highlighted == "<mark>Meet</mark> and <mark>meet</mark> again, <mark>MEET</mark>"

    def test_spans_keep_original_case(self):
        h = highlight_matches("Buy MILK", "milk")
        assert h.matches[0].text == "MILK"

    def test_spans_are_ordered_and_do_not_overlap(self):
        h = highlight_matches("aaaaa", "aa")
        assert [(m.start, m.end) for m in h.matches] == [(0, 2), (2, 4)]
        for previous, current in zip(h.matches, h.matches[1:]):
            assert previous.end <= current.start

    def test_query_is_normalized(self):
        h = highlight_matches("Pay rent", "  RENT ")
        assert h.match_count == 1
        assert h.highlighted == "Pay <mark>rent</mark>"

    def test_offsets_refer_to_original_text(self):
        h = highlight_matches("  leading spaces", "leading")
        assert h.matches[0].start == 2
        assert h.matches[0].text == "leading"

    def test_no_match(self):
        h = highlight_matches("Shopping", "milk")
        assert h.match_count == 0
        assert h.highlighted == "Shopping"

    def test_absent_inputs_pass_through(self):
        for text, query in [(None, "q"), ("", "q"), ("text", None), ("text", "")]:
            h = highlight_matches(text, query)
            assert h.original == text
            assert h.highlighted == text
            assert h.matches == []

    def test_custom_markers(self):
        h = highlight_matches("Team meeting", "team", open_tag="[", close_tag="]")
        assert h.highlighted == "[Team] meeting"

    def test_segments_rebuild_original(self):
        for text, query in [
            ("Meet and meet again", "meet"),
            ("aaaaa", "aa"),
            ("no match here", "zzz"),
            ("meet", "meet"),
        ]:
            h = highlight_matches(text, query)
            segments = list(h.segments())
            assert "".join(part for part, _ in segments) == text
            assert [part for part, is_match in segments if is_match] == [m.text for m in h.matches]

    def test_stripping_markers_rebuilds_original(self):
        h = highlight_matches("Meet and meet again", "meet")
        assert h.highlighted.replace("<mark>", "").replace("</mark>", "") == h.original

    def test_to_dict(self):
        data = highlight_matches("Team meeting", "meet").to_dict()
        assert data["match_count"] == 1
        assert data["matches"] == [{"start": 5, "end": 9, "text": "meet"}]

    def test_multi_char_lowercase(self):
        # "İ".lower() is two characters long
        result = highlight_matches("İzmir trip", "İzmir")
        assert result.match_count == 1
        assert result.matches[0].start == 0
        assert result.matches[0].end == 5
        assert result.highlighted == "<mark>İzmir</mark> trip"

    def test_query_whitespace_is_trimmed(self):
        result = highlight_matches("Team meeting", "  meet ")
        assert result.highlighted == "Team <mark>meet</mark>ing"
