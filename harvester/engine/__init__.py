"""Decision-and-execution engine."""

from .compounder import CompoundReport, IdleDepositor, IdleReport, RewardCompounder
from .optimizer import OptimizationAction, OptimizationDecision, PositionOptimizer, best_split
from .swap import SwapExecutor, SwapOutcome
from .valuation import PriceOracle, Valuation

__all__ = [
    "CompoundReport",
    "IdleDepositor",
    "IdleReport",
    "RewardCompounder",
    "OptimizationAction",
    "OptimizationDecision",
    "PositionOptimizer",
    "best_split",
    "SwapExecutor",
    "SwapOutcome",
    "PriceOracle",
    "Valuation",
]
