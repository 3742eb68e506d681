"""
Generic result container for pymortality computations.

Every public entry point (person-month construction, model fitting,
backend solves) returns its payload inside this envelope so that timing,
warnings and provenance are recorded the same way everywhere.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (converged, iterations, sizes)
    - timing is optional (don't burden unit tests)
    - provenance records library versions for reproducibility
    - Immutable (frozen=True)
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


def _default_provenance() -> dict[str, str]:
    """Versions of the interpreter and numerical stack in use."""
    import numpy
    import pandas
    import scipy

    from pymortality import __version__

    return {
        'pymortality': __version__,
        'python': platform.python_version(),
        'numpy': numpy.__version__,
        'scipy': scipy.__version__,
        'pandas': pandas.__version__,
    }


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific payload (person-month table, posterior
            summary, fitted model bundle, ...)
        info: Structured metadata (method, sizes, convergence)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the code path that produced this result
        warnings: Non-fatal issues encountered during computation
        provenance: Library versions at the time of computation

    Examples:
        >>> Result(
        ...     params=PersonMonthParams(...),
        ...     info={'method': 'survival_split', 'compact': True},
        ...     timing={'total_seconds': 0.2},
        ...     backend_name='cpu_split',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
    provenance: dict[str, str] = field(default_factory=_default_provenance)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
