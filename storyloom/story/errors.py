"""
Story engine exceptions.

Configuration errors, upstream provider errors, persistence errors and
ledger invariant violations share one base class.
"""

from typing import Any, Optional


class StoryEngineError(Exception):
    """Base exception for all story engine errors."""
    pass


class PromptTemplateError(StoryEngineError):
    """
    Raised when an instruction template references a field that was not supplied.

    This is a configuration error in the template table, not a runtime input error.
    """

    def __init__(self, template_name: str, missing_field: str):
        self.template_name = template_name
        self.missing_field = missing_field
        super().__init__(
            f"Template '{template_name}' references unknown field: {missing_field}"
        )


class LLMProviderError(StoryEngineError):
    """
    Raised when the LLM call itself fails (network, auth, provider error).

    Carries the provider name and, when available, the provider's response body.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        provider_detail: Optional[Any] = None,
    ):
        self.provider = provider
        self.provider_detail = provider_detail
        super().__init__(message)


class PersistenceError(StoryEngineError):
    """Raised when the document store cannot be read or written."""
    pass


class ChoiceAlreadyRecordedError(StoryEngineError):
    """Raised when a player selects an option on a block that already has a recorded choice."""

    def __init__(self, player_id: str, block_id: str):
        self.player_id = player_id
        self.block_id = block_id
        super().__init__(f"Choice already recorded for player {player_id} on block {block_id}")


class InvalidChoiceError(StoryEngineError):
    """Raised when a chosen index does not point into the offered options."""

    def __init__(self, block_id: str, chosen_index: Any, option_count: int):
        self.block_id = block_id
        self.chosen_index = chosen_index
        self.option_count = option_count
        super().__init__(
            f"Invalid choice index {chosen_index} for block {block_id} "
            f"({option_count} options available)"
        )
