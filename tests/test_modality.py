"""Tests for the exclusive input modality."""

from unittest.mock import Mock

import pytest

from watch_controller.exceptions import InvalidModalityTransitionError
from watch_controller.modality import (
    IDLE,
    ModalityKind,
    ModalityState,
    PluginActive,
    PromptEntering,
    StepReviewActive,
)


class TestModalityState:
    def test_starts_idle(self):
        state = ModalityState()
        assert state.is_idle
        assert state.current is IDLE
        assert state.kind is ModalityKind.IDLE

    def test_enter_prompt(self):
        state = ModalityState()
        prompt = Mock()
        state.enter_prompt(prompt)
        assert state.current == PromptEntering(prompt)
        assert state.kind is ModalityKind.PROMPT_ENTERING

    def test_enter_review(self):
        state = ModalityState()
        reviewer = Mock()
        state.enter_review(reviewer)
        assert isinstance(state.current, StepReviewActive)
        assert state.current.reviewer is reviewer

    def test_activate_plugin(self):
        state = ModalityState()
        plugin = Mock()
        state.activate_plugin(plugin)
        assert isinstance(state.current, PluginActive)
        assert state.current.plugin is plugin

    def test_second_activation_is_rejected(self):
        state = ModalityState()
        state.activate_plugin(Mock())
        with pytest.raises(InvalidModalityTransitionError) as exc_info:
            state.activate_plugin(Mock())
        assert exc_info.value.context == {
            "current": "plugin_active",
            "requested": "plugin_active",
        }

    def test_cannot_mix_modalities(self):
        state = ModalityState()
        state.enter_prompt(Mock())
        with pytest.raises(InvalidModalityTransitionError):
            state.enter_review(Mock())

    def test_reset(self):
        state = ModalityState()
        state.enter_prompt(Mock())
        state.reset()
        assert state.is_idle
        state.reset()
        assert state.is_idle

    def test_reset_if_matches_kind_only(self):
        state = ModalityState()
        state.enter_prompt(Mock())
        assert state.reset_if(ModalityKind.PLUGIN_ACTIVE) is False
        assert state.kind is ModalityKind.PROMPT_ENTERING
        assert state.reset_if(ModalityKind.PROMPT_ENTERING) is True
        assert state.is_idle
