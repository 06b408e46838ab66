"""Runtime configuration for the app (toggleable during tests/runtime)."""
import os
from decimal import Decimal
from typing import NamedTuple

# Checkout pricing
DELIVERY_FEE = Decimal("5.00")
SERVICE_TAX_RATE = Decimal("0.06")
CURRENCY = os.getenv("CURRENCY", "RM")

MAX_CART_QUANTITY = 10

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class ConfigState(NamedTuple):
    strict_transitions: bool


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default) in ("1", "true", "True", "yes", "on")


# Default: forward-only order status transitions
state = ConfigState(strict_transitions=_env_flag("STRICT_TRANSITIONS", "1"))


def set_strict_transitions(value: bool):
    global state
    state = state._replace(strict_transitions=bool(value))


def is_strict_transitions() -> bool:
    return state.strict_transitions
