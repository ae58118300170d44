"""Denormalized reading statistics maintained from progress changes."""

from .maintainer import StatsMaintainer
from .reader import StatsReader
from .transitions import TransitionEffect, classify

__all__ = [
    "StatsMaintainer",
    "StatsReader",
    "TransitionEffect",
    "classify",
]
