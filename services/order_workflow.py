"""Order status state machine.

em_processamento -> em_preparacao -> em_rota -> finalizado, with cancelado and
recusado as side exits. Any open order may move to any status except that an
order already out for delivery cannot be cancelled. finalizado, cancelado and
recusado are final.
"""
from enum import Enum
from typing import FrozenSet, Tuple

from core.errors import StateTransitionError, ValidationError


class OrderStatus(str, Enum):
    EM_PROCESSAMENTO = "em_processamento"
    EM_PREPARACAO = "em_preparacao"
    EM_ROTA = "em_rota"
    FINALIZADO = "finalizado"
    CANCELADO = "cancelado"
    RECUSADO = "recusado"


class PaymentStatus(str, Enum):
    PENDENTE = "pendente"
    CONFIRMADO = "confirmado"
    NAO_CONFIRMADO = "nao_confirmado"


class PaymentMethod(str, Enum):
    PIX = "pix"
    CARTAO = "cartao"
    DINHEIRO = "dinheiro"


INITIAL_STATUS = OrderStatus.EM_PROCESSAMENTO

TERMINAL_STATES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.FINALIZADO, OrderStatus.CANCELADO, OrderStatus.RECUSADO}
)

FORBIDDEN_TRANSITIONS: FrozenSet[Tuple[OrderStatus, OrderStatus]] = frozenset(
    {(OrderStatus.EM_ROTA, OrderStatus.CANCELADO)}
)

# Minutes left until delivery, shown to the shopper
ESTIMATED_MINUTES_REMAINING = {
    OrderStatus.EM_PROCESSAMENTO: 25,
    OrderStatus.EM_PREPARACAO: 15,
    OrderStatus.EM_ROTA: 10,
}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid order status: {value}", allowed=[s.value for s in OrderStatus])


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL_STATES


def validate_transition(current: str, new: str) -> OrderStatus:
    """Return ``new`` as an OrderStatus or raise StateTransitionError."""
    current_status = OrderStatus(current)
    new_status = parse_status(new)
    if current_status in TERMINAL_STATES:
        raise StateTransitionError(
            f"Order is already {current_status.value} and cannot be changed",
            current_status=current_status.value,
            requested_status=new_status.value,
        )
    if (current_status, new_status) in FORBIDDEN_TRANSITIONS:
        raise StateTransitionError(
            "An order that is out for delivery cannot be cancelled",
            current_status=current_status.value,
            requested_status=new_status.value,
        )
    return new_status


def customer_can_cancel(status: str) -> bool:
    return OrderStatus(status) == OrderStatus.EM_PROCESSAMENTO


def estimated_minutes_remaining(status: str) -> int:
    return ESTIMATED_MINUTES_REMAINING.get(OrderStatus(status), 0)
