from breathewell.utils.moderation import clean_text, moderate_text


def test_clean_text_leaves_ordinary_text_alone():
    assert clean_text("My inhaler helps a lot") == "My inhaler helps a lot"


def test_profanity_is_censored():
    result = moderate_text("what the shit")
    assert "shit" not in result.cleaned
    assert result.flagged


def test_leetspeak_is_flagged():
    assert moderate_text("sh1t happens").flagged
