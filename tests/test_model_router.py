"""Tests for model name routing."""

import pytest

from codex_openai_proxy.core.exceptions import ModelNotAllowed
from codex_openai_proxy.core.model_router import ModelRouter, ModelSpec, ReasoningEffort

from conftest import ALLOWLIST

EFFORT_SUFFIXES = [
    (ReasoningEffort.NONE, ""),
    (ReasoningEffort.LOW, "-low"),
    (ReasoningEffort.MEDIUM, "-medium"),
    (ReasoningEffort.HIGH, "-high"),
    (ReasoningEffort.XHIGH, "-xhigh"),
]


@pytest.mark.parametrize("base", ALLOWLIST)
@pytest.mark.parametrize("effort,suffix", EFFORT_SUFFIXES)
def test_resolve_round_trip(router, base, effort, suffix):
    """Every base model resolves with every advertised suffix."""
    assert router.resolve(base + suffix) == ModelSpec(base_model=base, effort=effort)


@pytest.mark.parametrize("base", ALLOWLIST)
def test_extra_high_aliases(router, base):
    """Both extra-high spellings are aliases for xhigh."""
    expected = router.resolve(f"{base}-xhigh")
    assert router.resolve(f"{base}-extra-high") == expected
    assert router.resolve(f"{base}-extra_high") == expected
    assert expected.effort is ReasoningEffort.XHIGH


@pytest.mark.parametrize(
    "model",
    ["totally-unknown", "gpt-4", "GPT-5", "gpt-5-ultra", "gpt-5.2-low-high", "-high", ""],
)
def test_unknown_model_rejected(router, model):
    """Anything not decomposable into an allowlisted base fails."""
    with pytest.raises(ModelNotAllowed) as exc_info:
        router.resolve(model)

    error = exc_info.value
    assert error.status_code == 400
    assert error.to_dict()["error"]["code"] == "model_not_allowed"
    assert error.to_dict()["error"]["param"] == "model"


def test_base_model_ending_in_suffix_token():
    """An allowlisted name that ends like a suffix is not stripped."""
    router = ModelRouter(["o-high", "bar-max"])

    assert router.resolve("o-high") == ModelSpec(base_model="o-high")
    assert router.resolve("o-high-low") == ModelSpec(base_model="o-high", effort=ReasoningEffort.LOW)
    assert router.resolve("bar-max") == ModelSpec(base_model="bar-max")
    with pytest.raises(ModelNotAllowed):
        router.resolve("o")


def test_exact_match_wins_over_stripping():
    """When both the full name and its stripped base are allowed, the full name wins."""
    router = ModelRouter(["m", "m-low"])

    assert router.resolve("m-low") == ModelSpec(base_model="m-low")


def test_list_available(router):
    """Listing is five entries per base model, in order, without aliases."""
    listed = router.list_available()

    assert len(listed) == 5 * len(ALLOWLIST)
    assert listed[:5] == ["gpt-5", "gpt-5-low", "gpt-5-medium", "gpt-5-high", "gpt-5-xhigh"]
    assert not any("extra" in model for model in listed)
    assert listed == router.list_available()


def test_every_listed_model_resolves(router):
    for model in router.list_available():
        assert router.resolve(model).base_model in ALLOWLIST


def test_is_listed(router):
    assert router.is_listed("gpt-5.2-high")
    assert not router.is_listed("gpt-5.2-extra-high")


def test_has_reasoning():
    assert not ModelSpec(base_model="gpt-5").has_reasoning
    assert ModelSpec(base_model="gpt-5", effort=ReasoningEffort.LOW).has_reasoning
