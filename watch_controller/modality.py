"""Exclusive input modality.

Exactly one consumer owns the keyboard at a time. The current owner is a
single tagged value, so "prompt and plugin both active" cannot be
represented.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from .exceptions import InvalidModalityTransitionError

if TYPE_CHECKING:
    from .plugins import PluginDescriptor
    from .prompt import Prompt
    from .snapshot_review import SnapshotInteractiveMode

logger = logging.getLogger(__name__)


class ModalityKind(Enum):
    IDLE = "idle"
    PROMPT_ENTERING = "prompt_entering"
    STEP_REVIEW_ACTIVE = "step_review_active"
    PLUGIN_ACTIVE = "plugin_active"


@dataclass(frozen=True)
class Idle:
    kind = ModalityKind.IDLE


@dataclass(frozen=True)
class PromptEntering:
    prompt: Prompt
    kind = ModalityKind.PROMPT_ENTERING


@dataclass(frozen=True)
class StepReviewActive:
    reviewer: SnapshotInteractiveMode
    kind = ModalityKind.STEP_REVIEW_ACTIVE


@dataclass(frozen=True)
class PluginActive:
    plugin: PluginDescriptor
    kind = ModalityKind.PLUGIN_ACTIVE


Modality = Union[Idle, PromptEntering, StepReviewActive, PluginActive]

IDLE = Idle()


class ModalityState:
    """Holds the current modality and guards its transitions."""

    def __init__(self) -> None:
        self._current: Modality = IDLE

    @property
    def current(self) -> Modality:
        return self._current

    @property
    def kind(self) -> ModalityKind:
        return self._current.kind

    @property
    def is_idle(self) -> bool:
        return self._current.kind is ModalityKind.IDLE

    def enter_prompt(self, prompt: Prompt) -> None:
        self._transition(PromptEntering(prompt))

    def enter_review(self, reviewer: SnapshotInteractiveMode) -> None:
        self._transition(StepReviewActive(reviewer))

    def activate_plugin(self, plugin: PluginDescriptor) -> None:
        self._transition(PluginActive(plugin))

    def reset(self) -> None:
        """Return to idle. Always allowed."""
        if not self.is_idle:
            logger.debug("Modality %s -> idle", self._current.kind.value)
        self._current = IDLE

    def reset_if(self, kind: ModalityKind) -> bool:
        """Return to idle only if ``kind`` is the active modality."""
        if self._current.kind is kind:
            self.reset()
            return True
        return False

    def _transition(self, target: Modality) -> None:
        if not self.is_idle:
            raise InvalidModalityTransitionError(
                current=self._current.kind.value,
                requested=target.kind.value,
            )
        logger.debug("Modality idle -> %s", target.kind.value)
        self._current = target
