"""
Smoothing backends.

Available backends:
    LaplaceBackend: CPU reference implementation (empirical-Bayes Laplace)
"""

from pymortality.smoothing.backends.cpu import LaplaceBackend

__all__ = [
    "LaplaceBackend",
]
