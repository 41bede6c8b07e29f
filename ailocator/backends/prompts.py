"""Prompt text shared by every chat-style synthesis backend."""

from __future__ import annotations

SYSTEM_PROMPT = """You find elements in HTML and write precise, stable selectors for web automation.

# OUTPUT
Return ONLY valid JSON, no markdown and no explanation:
{
  "best": "most stable selector",
  "alternates": ["alternate1", "alternate2", "alternate3"]
}

# SELECTOR PRIORITY
1. Test attributes: [data-testid="value"], [data-test], [data-qa]
2. Unique, human-written id: #login-button
3. ARIA attributes: [aria-label="Submit"], [role="button"]
4. Name attribute: input[name="email"]
5. Unique semantic class: .submit-button
6. Element + text XPath: //button[normalize-space(.)="Login"]
7. Combined attributes: button[type="submit"][class*="primary"]

# AVOID
- Generated ids or hashed classes (#root-abc123, .css-1x2y3z4a)
- Structural chains (body > div > div > span, /html/body/div[1]/div[2])
- Positional predicates (//div[1]//span[2])
- Inline styles

# TEXT
When the task names visible text, match it with normalize-space(.) or contains(normalize-space(.), "...").
Use translate(., 'ABC…', 'abc…') for case-insensitive comparisons.

Give 3-4 alternates ordered from most to least stable, and check each one mentally against the DOM."""

TEMPLATE_INSTRUCTIONS = """

# TEMPLATE LOCATORS
The task contains placeholders in curly braces, e.g. {userName} or {itemId}.
Return selector PATTERNS that keep those placeholders verbatim:
1. Find where the value would appear on the element (text, id, name, data-*, aria-*).
2. Put the {placeholder} exactly there, e.g. "button[data-user='{userName}']" or
   "//tr[contains(normalize-space(.), '{itemId}')]//button".
3. Never replace a placeholder with a concrete value from the DOM.
4. If the placeholder only describes page context and does not appear on the element,
   return a stable selector without it."""


def build_system_prompt(wants_template: bool) -> str:
    if wants_template:
        return SYSTEM_PROMPT + TEMPLATE_INSTRUCTIONS
    return SYSTEM_PROMPT


def build_user_prompt(document_snippet: str, intent: str, origin_id: str) -> str:
    return f"""# PAGE
{origin_id}

# HTML DOM
{document_snippet}

# TASK
{intent}

# INSTRUCTIONS
1. Examine the DOM above.
2. Find the element that matches the task.
3. Return 4 selectors, most stable first, as the JSON object described above."""
