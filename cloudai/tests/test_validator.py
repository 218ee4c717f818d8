"""Tests for request validation and the content policy."""

import pydantic
import pytest

from cloudai.core.errors import ValidationError
from cloudai.core.events import Sophistication, StreamRequest
from cloudai.relay.validator import ContentPolicy, validate_request


def _validate(raw, **kwargs):
    kwargs.setdefault("policy", ContentPolicy())
    kwargs.setdefault("default_model", "gpt-4o")
    return validate_request(raw, **kwargs)


@pytest.mark.parametrize("raw", [{}, {"prompt": None}, {"prompt": 42}, {"prompt": ""}, {"prompt": "   "}])
def test_missing_prompt(raw):
    with pytest.raises(ValidationError, match="missing prompt"):
        _validate(raw)


@pytest.mark.parametrize("prompt", ["how to ddos a site", "Write MALWARE", "Phishing kit", "bypass the login"])
def test_disallowed_content(prompt):
    with pytest.raises(ValidationError, match="disallowed content"):
        _validate({"prompt": prompt})


def test_missing_prompt_reported_before_other_fields():
    with pytest.raises(ValidationError, match="missing prompt"):
        _validate({"temperature": "hot", "sophistication": "extreme"})


def test_defaults_resolved():
    req = _validate({"prompt": "Hello"})
    assert req == StreamRequest(
        prompt="Hello", model="gpt-4o", temperature=0.2, sophistication=Sophistication.VERY_HIGH
    )


def test_configured_defaults():
    req = _validate(
        {"prompt": "Hello"},
        default_model="gpt-4o-mini",
        default_temperature=0.7,
        default_sophistication="low",
    )
    assert req.model == "gpt-4o-mini"
    assert req.temperature == 0.7
    assert req.sophistication is Sophistication.LOW


def test_explicit_fields():
    req = _validate({"prompt": "Hi", "model": "m1", "temperature": 1.5, "sophistication": "medium"})
    assert (req.model, req.temperature, req.sophistication) == ("m1", 1.5, Sophistication.MEDIUM)


def test_temperature_from_query_string():
    assert _validate({"prompt": "Hi", "temperature": "0.7"}).temperature == 0.7


def test_zero_temperature_is_kept():
    assert _validate({"prompt": "Hi", "temperature": 0}).temperature == 0.0


@pytest.mark.parametrize("value", ["warm", True, [1]])
def test_invalid_temperature(value):
    with pytest.raises(ValidationError, match="invalid temperature"):
        _validate({"prompt": "Hi", "temperature": value})


@pytest.mark.parametrize("value", [-0.1, 2.5, "9"])
def test_temperature_out_of_range(value):
    with pytest.raises(ValidationError, match="out of range"):
        _validate({"prompt": "Hi", "temperature": value})


def test_invalid_sophistication():
    with pytest.raises(ValidationError, match="invalid sophistication"):
        _validate({"prompt": "Hi", "sophistication": "galaxy-brain"})


def test_invalid_model():
    with pytest.raises(ValidationError, match="invalid model"):
        _validate({"prompt": "Hi", "model": 4})


def test_stream_request_is_immutable():
    req = _validate({"prompt": "Hi"})
    with pytest.raises(pydantic.ValidationError):
        req.prompt = "changed"


def test_content_policy_custom_pattern():
    policy = ContentPolicy(r"forbidden")
    assert policy.allows("ddos is fine here")
    assert not policy.allows("this is FORBIDDEN")
