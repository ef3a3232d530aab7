from __future__ import annotations

from family_api.bio import EMPTY_RESPONSE, GENERATION_FAILED, MISSING_KEY, BioGenerator, build_prompt


class _Response:
    def __init__(self, text):
        self.text = text


class _Models:
    def __init__(self, text=None, error: Exception | None = None):
        self._text = text
        self._error = error
        self.calls: list[dict] = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return _Response(self._text)


class _Client:
    def __init__(self, **kwargs):
        self.models = _Models(**kwargs)


def test_prompt_mentions_every_input() -> None:
    prompt = build_prompt("Amina", 1990, "Descendant", "weaver, poet")

    assert "Name: Amina" in prompt
    assert "Birth Year: 1990" in prompt
    assert "Role in family: Descendant" in prompt
    assert "weaver, poet" in prompt
    assert "max 100 words" in prompt


def test_missing_key() -> None:
    assert BioGenerator(None).generate("Amina", 1990, "Descendant") == MISSING_KEY


def test_generated_text_is_returned() -> None:
    client = _Client(text="  Amina loved poetry.  ")
    bio = BioGenerator(None, model="gemini-test", client=client)

    assert bio.generate("Amina", None, "Descendant") == "Amina loved poetry."
    assert client.models.calls[0]["model"] == "gemini-test"


def test_empty_and_failed_generation() -> None:
    assert BioGenerator(None, client=_Client(text="")).generate("A", 1, "B") == EMPTY_RESPONSE
    failing = _Client(error=RuntimeError("quota exceeded"))
    assert BioGenerator(None, client=failing).generate("A", 1, "B") == GENERATION_FAILED
