"""
Trigger verdict parsing.

Trigger responses end with a JSON verdict, preferably fenced::

    Price is $42
    ```json
    {"triggered": true}
    ```

The parser looks for the last fenced block carrying a ``triggered`` key,
then for the last bare ``{...}`` object (without nested braces) carrying
one. Text before the verdict is the user-facing response.
"""

import json
import re

from orchestra.triggers.models import TriggerOutcome, TriggerResult

FENCED_VERDICT_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
BARE_VERDICT_PATTERN = re.compile(r"\{[^{}]*\"triggered\"[^{}]*\}")

DEFAULT_TRIGGERED_RESPONSE: str = "Condition met."
DEFAULT_SKIPPED_RESPONSE: str = "Condition not met"
EXCERPT_CHARS: int = 200


def _find_verdict(content: str) -> re.Match[str] | None:
    fenced = [m for m in FENCED_VERDICT_PATTERN.finditer(content) if '"triggered"' in m.group(1)]
    if fenced:
        return fenced[-1]
    bare = list(BARE_VERDICT_PATTERN.finditer(content))
    return bare[-1] if bare else None


def parse_verdict(content: str) -> TriggerResult:
    """
    Parse a trigger response into a result.

    Parameters
    ----------
    content : str
        Final text of the trigger evaluation.

    Returns
    -------
    TriggerResult
        ``triggered`` with the text preceding the verdict, ``skipped`` with
        the verdict's reason, or ``error`` when no well-formed verdict exists.

    Examples
    --------
    >>> parse_verdict('Price is $42\\n```json\\n{"triggered": true}\\n```').response
    'Price is $42'
    """
    match = _find_verdict(content)
    if match is None:
        return TriggerResult(
            result=TriggerOutcome.ERROR,
            error=f'No JSON verdict found in response: "{content[-EXCERPT_CHARS:]}"',
        )

    json_text: str = match.group(1) if match.re is FENCED_VERDICT_PATTERN else match.group(0)
    try:
        verdict = json.loads(json_text)
    except json.JSONDecodeError as e:
        return TriggerResult(result=TriggerOutcome.ERROR, error=f"Parse error: {e}")

    triggered = verdict.get("triggered")
    if not isinstance(triggered, bool):
        return TriggerResult(
            result=TriggerOutcome.ERROR,
            error=f'Invalid response: triggered must be boolean, got "{type(triggered).__name__}"',
        )

    if triggered:
        response: str = content[: match.start()].strip()
        return TriggerResult(
            result=TriggerOutcome.TRIGGERED,
            response=response or DEFAULT_TRIGGERED_RESPONSE,
        )

    reason = verdict.get("reason")
    return TriggerResult(
        result=TriggerOutcome.SKIPPED,
        response=str(reason) if reason else DEFAULT_SKIPPED_RESPONSE,
    )
