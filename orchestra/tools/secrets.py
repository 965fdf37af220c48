"""
Secret resolution for tool inputs.

Models never see secret values. They reference a secret with a
``${{NAME}}`` token, and the HTTP tools resolve tokens right before a
request is sent. Only allowlisted names can be resolved.
"""

import logging
import os
import re

from orchestra.constants import ALLOWED_SECRET_NAMES

logger = logging.getLogger(__name__)

SECRET_TOKEN_PATTERN: re.Pattern[str] = re.compile(r"\$\{\{([A-Z_]+)\}\}")


def secret_token(name: str) -> str:
    """
    Return the placeholder token for a secret.

    Examples
    --------
    >>> secret_token("SERPER_API_KEY")
    '${{SERPER_API_KEY}}'
    """
    return "${{" + name + "}}"


class SecretStore:
    """
    Lookup of allowlisted secret values.

    Values come from the configuration's ``secrets`` table first, then from
    the environment.

    Parameters
    ----------
    secrets : dict[str, str] | None, optional
        Configured secret values.
    allowed : tuple[str, ...], optional
        Names that may be resolved.

    Examples
    --------
    >>> store = SecretStore({"SERPER_API_KEY": "abc"})
    >>> store.resolve_tokens("https://x/?key=${{SERPER_API_KEY}}")
    'https://x/?key=abc'
    """

    def __init__(
        self,
        secrets: dict[str, str] | None = None,
        allowed: tuple[str, ...] = ALLOWED_SECRET_NAMES,
    ) -> None:
        self._secrets: dict[str, str] = dict(secrets or {})
        self.allowed: tuple[str, ...] = allowed

    def is_allowed(self, name: str) -> bool:
        """Whether ``name`` is on the allowlist."""
        return name in self.allowed

    def get(self, name: str) -> str | None:
        """Return the value of an allowlisted secret, if configured."""
        if not self.is_allowed(name):
            return None
        return self._secrets.get(name) or os.environ.get(name)

    def resolve_tokens(self, text: str) -> str:
        """
        Replace ``${{NAME}}`` tokens with their values.

        Tokens for unknown or unconfigured secrets are left untouched.

        Parameters
        ----------
        text : str
            Text possibly containing tokens.

        Returns
        -------
        str
            Text with resolvable tokens replaced.
        """

        def replace(match: re.Match[str]) -> str:
            value: str | None = self.get(match.group(1))
            if value is None:
                logger.warning(f"Secret {match.group(1)} is not configured")
                return match.group(0)
            return value

        return SECRET_TOKEN_PATTERN.sub(replace, text)
