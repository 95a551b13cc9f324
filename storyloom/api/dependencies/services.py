"""
Service container dependency.

Story store, document store, ledger, interpreter and orchestrator are built
once per process from environment configuration. Tests override
get_services through app.dependency_overrides.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ...infra.data_paths import get_llm_config
from ...ledger.choice_ledger import ChoiceLedger
from ...ledger.document_store import DocumentStore
from ...story.interpreter import PlaceholderInterpreter
from ...story.orchestrator import DynamicBlockOrchestrator
from ...story.story_store import StoryStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide story engine services."""

    story_store: StoryStore
    document_store: DocumentStore
    ledger: ChoiceLedger
    interpreter: PlaceholderInterpreter
    orchestrator: DynamicBlockOrchestrator

    @classmethod
    def build(
        cls,
        story_store: Optional[StoryStore] = None,
        document_store: Optional[DocumentStore] = None,
        **orchestrator_kwargs,
    ) -> "Services":
        """
        Wire services together.

        Args:
            story_store: Story store (env-configured when None)
            document_store: Document store (env-configured when None)
            **orchestrator_kwargs: provider, model_spec, llm_config overrides
        """
        story_store = story_store or StoryStore()
        document_store = document_store or DocumentStore()
        ledger = ChoiceLedger(document_store)
        interpreter = PlaceholderInterpreter(story_store, ledger)
        orchestrator_kwargs.setdefault("llm_config", get_llm_config())
        orchestrator = DynamicBlockOrchestrator(
            story_store, ledger, interpreter=interpreter, **orchestrator_kwargs
        )
        return cls(
            story_store=story_store,
            document_store=document_store,
            ledger=ledger,
            interpreter=interpreter,
            orchestrator=orchestrator,
        )

    def close(self) -> None:
        self.document_store.close()


_services: Optional[Services] = None


def get_services() -> Services:
    """Get (lazily building) the process-wide services."""
    global _services
    if _services is None:
        _services = Services.build()
        logger.info("[API] Services initialized")
    return _services


def shutdown_services() -> None:
    """Close and drop the process-wide services."""
    global _services
    if _services is not None:
        _services.close()
        _services = None
        logger.info("[API] Services closed")
