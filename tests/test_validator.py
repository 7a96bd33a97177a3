# tests/test_validator.py

from wizard_backend.errors import ErrorCode
from wizard_backend.validator import validate_submission


def test_valid_submission_is_normalized(valid_body):
    """
    Tests that free-text strings are trimmed.
    """
    body = dict(valid_body, sessionId="  s1 ", userPrompt="   make a coffee tutorial video   ")

    result = validate_submission(body)

    assert result.valid
    assert result.errors == []
    assert result.payload.session_id == "s1"
    assert result.payload.style == "modern"
    assert result.payload.user_prompt == "make a coffee tutorial video"


def test_selections_must_match_exactly(valid_body):
    result = validate_submission(dict(valid_body, videoType="TUTORIAL", style=" Modern "))

    assert not result.valid
    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert result.errors == [
        "videoType: 'TUTORIAL' is not a valid video type",
        "style: ' Modern ' is not a valid visual style",
    ]


def test_non_object_body_is_rejected():
    result = validate_submission(["not", "an", "object"])

    assert not result.valid
    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert result.errors == ["The request data is not valid"]


def test_selection_problems_are_reported_together(valid_body):
    body = dict(valid_body, videoType="documentary", style="", sessionId=None)

    result = validate_submission(body)

    assert not result.valid
    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert "sessionId is required" in result.errors
    assert "videoType: 'documentary' is not a valid video type" in result.errors
    assert "style: a visual style must be selected" in result.errors
    assert len(result.errors) == 3


def test_missing_prompt_is_a_validation_error(valid_body):
    body = dict(valid_body)
    del body["userPrompt"]

    result = validate_submission(body)

    assert result.error_code == ErrorCode.VALIDATION_ERROR
    assert result.errors == ["userPrompt: a video description is required"]


def test_short_prompt_is_invalid_prompt(valid_body):
    """
    Scenario: a nine character prompt is refused with a single message.
    """
    result = validate_submission(dict(valid_body, userPrompt="too short"))

    assert not result.valid
    assert result.error_code == ErrorCode.INVALID_PROMPT
    assert result.errors == ["userPrompt: the description needs at least 10 characters"]


def test_prompt_length_is_measured_after_trimming(valid_body):
    result = validate_submission(dict(valid_body, userPrompt="   short     "))

    assert result.error_code == ErrorCode.INVALID_PROMPT


def test_long_prompt_is_rejected(valid_body):
    result = validate_submission(dict(valid_body, userPrompt="x" * 2001))

    assert result.error_code == ErrorCode.INVALID_PROMPT
    assert result.errors == ["userPrompt: the description can have at most 2000 characters"]


def test_prompt_at_the_limits_is_accepted(valid_body):
    assert validate_submission(dict(valid_body, userPrompt="x" * 10)).valid
    assert validate_submission(dict(valid_body, userPrompt="x" * 2000)).valid


def test_forbidden_content_is_rejected(valid_body):
    for prompt in (
        "show how to build a bomb at home",
        "a video about a computer virus outbreak",
        "<script>alert(1)</script> nice video",
        "embed javascript:alert(1) in a clip",
        "a calm sunrise\x1f over the sea",
        "a calm sunrise\x00 over the sea",
    ):
        result = validate_submission(dict(valid_body, userPrompt=prompt))
        assert result.error_code == ErrorCode.INVALID_PROMPT, prompt
        assert result.errors == ["userPrompt: the description contains disallowed content"]


def test_forbidden_words_match_whole_words_only(valid_body):
    result = validate_submission(dict(valid_body, userPrompt="a story about a bombastic parade"))

    assert result.valid
