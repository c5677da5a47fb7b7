from tracecov.normalize import normalize_light, split_priority_tag, strip_suggestion_marker


def test_normalize_light_collapses_whitespace():
    text = "Line one\n\nLine   two\t\tLine three"
    assert normalize_light(text) == "Line one Line two Line three"


def test_split_priority_tag_trailing_and_leading():
    assert split_priority_tag("Create user returns 201 [P1]") == ("Create user returns 201", "P1")
    assert split_priority_tag("(p0) Reject SQL injection") == ("Reject SQL injection", "P0")


def test_split_priority_tag_absent():
    assert split_priority_tag("  Plain   scenario ") == ("Plain scenario", None)


def test_strip_suggestion_marker():
    assert strip_suggestion_marker("Create user ✅") == "Create user"
    assert strip_suggestion_marker("Create user \U0001F195 ") == "Create user"
    assert strip_suggestion_marker("Create ✅ user") == "Create ✅ user"
