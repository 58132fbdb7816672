"""
Tests for the order status state machine.
"""
import pytest

from core.errors import StateTransitionError, ValidationError
from services.order_workflow import (
    OrderStatus,
    TERMINAL_STATES,
    customer_can_cancel,
    estimated_minutes_remaining,
    is_terminal,
    validate_transition,
)

OPEN_STATES = [s for s in OrderStatus if s not in TERMINAL_STATES]


class TestTransitions:
    """Every (from, to) pair."""

    @pytest.mark.parametrize("current", OPEN_STATES)
    @pytest.mark.parametrize("new", list(OrderStatus))
    def test_open_states(self, current, new):
        if (current, new) == (OrderStatus.EM_ROTA, OrderStatus.CANCELADO):
            with pytest.raises(StateTransitionError):
                validate_transition(current.value, new.value)
        else:
            assert validate_transition(current.value, new.value) is new

    @pytest.mark.parametrize("current", sorted(TERMINAL_STATES))
    @pytest.mark.parametrize("new", list(OrderStatus))
    def test_terminal_states_are_final(self, current, new):
        with pytest.raises(StateTransitionError) as exc:
            validate_transition(current.value, new.value)
        assert exc.value.context["current_status"] == current.value

    def test_unknown_target_status(self):
        with pytest.raises(ValidationError):
            validate_transition("em_processamento", "shipped")


class TestHelpers:
    def test_terminal(self):
        assert is_terminal("finalizado")
        assert is_terminal("recusado")
        assert not is_terminal("em_rota")

    def test_customer_cancel_only_while_processing(self):
        assert customer_can_cancel("em_processamento")
        for status in ("em_preparacao", "em_rota", "finalizado", "cancelado", "recusado"):
            assert not customer_can_cancel(status)

    def test_estimated_minutes(self):
        assert estimated_minutes_remaining("em_processamento") == 25
        assert estimated_minutes_remaining("em_preparacao") == 15
        assert estimated_minutes_remaining("em_rota") == 10
        assert estimated_minutes_remaining("finalizado") == 0
