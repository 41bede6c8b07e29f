import logging

import pytest

from ailocator.core.contracts import CacheStrategy
from ailocator.core.templating import (
    derive_strategy,
    extract_placeholders,
    has_placeholders,
    plan_request,
    resolve_variables,
    substitute,
    substitute_for_selector,
    validate,
)


def test_has_placeholders() -> None:
    assert has_placeholders("Edit {user}")
    assert not has_placeholders("Edit user")
    assert not has_placeholders("Edit {not valid}")
    assert not has_placeholders("")
    assert not has_placeholders(None)


def test_extract_placeholders_dedupes_in_first_seen_order() -> None:
    assert extract_placeholders("{b} then {a} then {b}") == ["b", "a"]
    assert extract_placeholders("nothing here") == []


@pytest.mark.parametrize("text", ["Login button", "//button[@id='go']", "{", "a } b"])
def test_substitute_without_placeholders_is_identity(text: str) -> None:
    assert substitute(text, {"user": "alice"}) == text


def test_substitute_values_and_numbers() -> None:
    assert substitute("Row {id} of {user}", {"id": 7, "user": "bob"}) == "Row 7 of bob"


def test_substitute_missing_value_keeps_placeholder(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="ailocator.templating"):
        result = substitute("Hi {user} from {team}", {"user": "ann", "team": None})
    assert result == "Hi ann from {team}"
    assert "team" in caplog.text


def test_substitute_accepts_supplier() -> None:
    assert substitute("Hi {user}", lambda: {"user": "zoe"}) == "Hi zoe"


def test_substitute_for_selector_escapes_quotes() -> None:
    selector = "//td[normalize-space(.)='{name}']"
    assert substitute_for_selector(selector, {"name": "O'Brien"}) == "//td[normalize-space(.)='O\\'Brien']"
    assert substitute_for_selector('[title="{t}"]', {"t": 'say "hi"'}) == '[title="say \\"hi\\""]'


def test_substitute_with_empty_variables_returns_text() -> None:
    assert substitute_for_selector("#{id}", {}) == "#{id}"
    assert substitute_for_selector("#{id}", None) == "#{id}"


def test_validate() -> None:
    assert validate("plain", None).valid is True
    result = validate("{a} {b} {c}", {"a": 1, "c": None})
    assert result.valid is False
    assert result.missing == ("b", "c")
    assert validate("{a}", None).missing == ("a",)


def test_derive_strategy() -> None:
    assert derive_strategy(CacheStrategy.SMART, True) is CacheStrategy.TEMPLATE
    assert derive_strategy("smart", False) is CacheStrategy.RESOLVED
    assert derive_strategy(CacheStrategy.TEMPLATE, False) is CacheStrategy.TEMPLATE
    assert derive_strategy("resolved", True) is CacheStrategy.RESOLVED


def test_plan_request_template_keeps_raw_text() -> None:
    plan = plan_request("Edit {user}", {"user": "al"})
    assert plan.strategy is CacheStrategy.TEMPLATE
    assert plan.cache_text == plan.backend_text == "Edit {user}"
    assert plan.wants_template is True


def test_plan_request_resolved_uses_substituted_text() -> None:
    plan = plan_request("Edit {user}", {"user": "al"}, CacheStrategy.RESOLVED)
    assert plan.cache_text == "Edit al"
    assert plan.wants_template is False


def test_plan_request_forced_template_without_placeholders() -> None:
    plan = plan_request("Login", None, "template")
    assert plan.strategy is CacheStrategy.TEMPLATE
    assert plan.cache_text == "Login"
    assert plan.wants_template is False


def test_resolve_variables_invokes_supplier_each_time() -> None:
    counter = {"n": 0}

    def supplier() -> dict[str, int]:
        counter["n"] += 1
        return {"n": counter["n"]}

    assert resolve_variables(supplier) == {"n": 1}
    assert resolve_variables(supplier) == {"n": 2}
    assert resolve_variables(None) == {}
