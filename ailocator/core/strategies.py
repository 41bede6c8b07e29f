"""Deterministic selector builders.

Each builder turns a piece of visible text into a selector string without
consulting a model.  Backends use them to assemble fallback candidates when
the model cannot be reached.
"""

from __future__ import annotations

import re

_LOWER = "abcdefghijklmnopqrstuvwxyz"
_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_INTERACTIVE_ROLES = ("button", "link", "tab", "menuitem", "option", "checkbox", "radio", "textbox")


def escape_xpath_literal(text: str) -> str:
    """Quote *text* as an XPath string literal, using concat() when it holds both quote kinds."""
    if '"' not in text:
        return f'"{text}"'
    if "'" not in text:
        return f"'{text}'"
    parts = text.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def _case_folded(expression: str) -> str:
    return f"translate({expression}, '{_UPPER}', '{_LOWER}')"


def _slug(text: str) -> str:
    return re.sub(r"\s+", "-", text.lower())


def text_exact_selector(text: str) -> str:
    literal = escape_xpath_literal(text)
    return f"xpath=//*[normalize-space(.)={literal} and not(descendant::*[normalize-space(.)={literal}])]"


def text_contains_selector(text: str) -> str:
    return f"xpath=//*[contains(normalize-space(.), {escape_xpath_literal(text)})]"


def data_test_id_selector(text: str) -> str:
    key = _slug(text)
    return ",".join(f'[{attr}*="{key}"]' for attr in ("data-testid", "data-test", "data-qa", "data-cy"))


def button_by_text_selector(text: str) -> str:
    literal = escape_xpath_literal(text.lower())
    return "xpath=" + " | ".join(
        (
            f"//button[contains({_case_folded('normalize-space(.)')}, {literal})]",
            f"//input[@type='button' or @type='submit'][contains({_case_folded('@value')}, {literal})]",
            f"//*[@role='button'][contains({_case_folded('normalize-space(.)')}, {literal})]",
        )
    )


def link_by_text_selector(text: str) -> str:
    literal = escape_xpath_literal(text.lower())
    return (
        f"xpath=//a[contains({_case_folded('normalize-space(.)')}, {literal})"
        f" or contains({_case_folded('@aria-label')}, {literal})]"
    )


def input_by_label_selector(text: str) -> str:
    literal = escape_xpath_literal(text)
    label = f"//label[contains(normalize-space(.), {literal})]"
    return "xpath=" + " | ".join(
        (
            f"//*[@id={label}/@for]",
            f"{label}//input",
            f"{label}//textarea",
            f"{label}//select",
            f"//input[@aria-label={literal} or @placeholder={literal}]",
            f"//textarea[@aria-label={literal} or @placeholder={literal}]",
        )
    )


def aria_role_selector(text: str) -> str:
    literal = escape_xpath_literal(text.lower())
    paths = [
        f"//*[@role='{role}'][contains({_case_folded('@aria-label')}, {literal})"
        f" or contains({_case_folded('normalize-space(.)')}, {literal})]"
        for role in _INTERACTIVE_ROLES
    ]
    return "xpath=" + " | ".join(paths)


def id_class_selector(text: str) -> str:
    key = _slug(text)
    return f'#{key},[id*="{key}"],[class*="{key}"]'


def heading_selector(text: str) -> str:
    literal = escape_xpath_literal(text)
    return "xpath=" + " | ".join(f"//h{level}[normalize-space(.)={literal}]" for level in range(1, 7))
