import pytest

from curatorworks.apps.curation.prompts import CRITIC_PERSONAS, NINA, SUE, get_persona
from curatorworks.libs.prompting import PromptLibrary, PromptProfileBase, UnknownProfile


def test_library_lookup_and_default():
    first = PromptProfileBase(name="First", description="", system_prompt="a")
    second = PromptProfileBase(name="second", description="", system_prompt="b")
    library = PromptLibrary([first, second], default="first")

    assert library.get(None) is first
    assert library.get("SECOND") is second
    assert library.get("missing") is first
    assert "first" in library and "third" not in library
    assert library.names() == ["First", "second"]
    with pytest.raises(UnknownProfile):
        library.require("third")


def test_library_rejects_duplicates_and_bad_default():
    profile = PromptProfileBase(name="dup", description="", system_prompt="")

    with pytest.raises(ValueError):
        PromptLibrary([profile, profile], default="dup")
    with pytest.raises(ValueError):
        PromptLibrary([profile], default="other")


def test_critic_personas_are_registered():
    assert CRITIC_PERSONAS.names() == ["nina", "sue"]
    assert get_persona("SUE") is SUE
    assert get_persona(None) is NINA
    for persona in (NINA, SUE):
        assert sum(persona.weights.values()) == pytest.approx(1.0)
        assert '"scores_raw"' in persona.system_prompt


def test_user_prompt_carries_work_context():
    text = NINA.render_user_prompt(title="Pier", agent_source="solienne", description="fog")

    assert "Title: Pier" in text
    assert "solienne" in text
