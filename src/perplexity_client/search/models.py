"""Search modes and source types."""

from enum import Enum
from typing import Iterable, List

from perplexity_client.exceptions import ValidationError


class SearchMode(str, Enum):
    """
    Caller-facing search mode.

    Every mode except AUTO is premium and consumes the premium-query allowance.
    """
    AUTO = "auto"
    PRO = "pro"
    REASONING = "reasoning"
    DEEP_RESEARCH = "deep research"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value

    @property
    def is_premium(self) -> bool:
        return self is not SearchMode.AUTO

    @property
    def wire_mode(self) -> str:
        """Two-valued mode string sent to the backend."""
        return "concise" if self is SearchMode.AUTO else "copilot"

    @classmethod
    def parse(cls, value: "SearchMode | str") -> "SearchMode":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Invalid search mode.", payload=value) from None


class Source(str, Enum):
    """Source type a search may draw from."""
    WEB = "web"
    SCHOLAR = "scholar"
    SOCIAL = "social"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse_many(cls, values: Iterable["Source | str"]) -> List["Source"]:
        parsed = []
        for value in values:
            try:
                parsed.append(cls(value))
            except ValueError:
                raise ValidationError("Invalid sources.", payload=value) from None
        return parsed
