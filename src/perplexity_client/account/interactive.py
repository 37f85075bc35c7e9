"""Interface of the interactive (browser-driven) login collaborator."""

from typing import Dict, Optional, Protocol


class InteractiveLogin(Protocol):
    """
    Completes a signin that a plain HTTP fetch cannot, e.g. behind a bot challenge.

    Implementations drive a real browser; none ships with this package.
    """

    async def attempt_interactive_login(self, target_email: str, timeout: float) -> Optional[Dict[str, str]]:
        """
        Sign in as target_email.

        Returns:
            The session cookie set, or None if the login did not succeed
        """
        ...
