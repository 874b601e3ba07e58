"""
Slippage Models for Backtesting.

Adjust recorded fill prices for execution costs:
- None: Fill at the recorded price
- FixedBps: Constant adverse move in basis points
"""

from decimal import Decimal

from src.events.schemas import FillEvent, Side, to_decimal

from .errors import ConfigurationError
from .interfaces import BaseSlippageModel

BPS = Decimal("10000")


class NoSlippage(BaseSlippageModel):
    """Fills execute at their recorded price."""

    def adjust_price(self, fill: FillEvent) -> Decimal:
        return fill.price


class FixedBpsSlippage(BaseSlippageModel):
    """
    Constant adverse slippage.

    Buys pay `bps` basis points above the recorded price, sells receive
    `bps` basis points below it.
    """

    def __init__(self, bps=Decimal("5")):
        """
        Args:
            bps: Slippage in basis points (must be >= 0)
        """
        self.bps = to_decimal(bps)
        if self.bps < 0:
            raise ConfigurationError(f"Slippage bps must be non-negative, got {self.bps}")

    def adjust_price(self, fill: FillEvent) -> Decimal:
        move = fill.price * self.bps / BPS
        if fill.side == Side.BUY:
            return fill.price + move
        return fill.price - move


def create_slippage_model(model_type: str, **kwargs) -> BaseSlippageModel:
    """
    Factory function to create slippage model.

    Args:
        model_type: "none" or "fixed_bps"
        **kwargs: Model-specific parameters

    Returns:
        Slippage model instance
    """
    models = {
        "none": NoSlippage,
        "fixed_bps": FixedBpsSlippage,
    }

    if model_type not in models:
        raise ConfigurationError(
            f"Unknown slippage model: {model_type}. Choose from {list(models.keys())}"
        )

    return models[model_type](**kwargs)
