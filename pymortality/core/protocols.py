"""
Core protocols for pymortality.

These define structural interfaces that pluggable implementations must
satisfy. We use Protocol (structural typing) rather than ABC (nominal
typing) so that an inference engine written elsewhere can be injected
without inheriting from anything in this package.

Design Principles:
    - Minimal contracts: prescribe only what's truly universal
    - Type-safe: use generics to preserve type information through pipelines
"""

from typing import Protocol, TypeVar, runtime_checkable

from pymortality.core.result import Result

P = TypeVar('P', covariant=True)  # Parameter payload type
D = TypeVar('D', contravariant=True)  # Problem type


@runtime_checkable
class Backend(Protocol[D, P]):
    """
    Protocol for inference backends.

    A backend takes a fully assembled problem (model specification,
    augmented data, family, options) and produces a posterior summary.
    It is the only place where the long-running, blocking computation
    happens; its own iteration and convergence control is configured by
    the options carried on the problem.

    Backends are stateless between calls. Failures are signalled by
    raising ``SolverFailure`` (or a subclass), never by returning a
    partial result.

    Type Parameters:
        D: The problem type this backend accepts
        P: The parameter payload type this backend produces
    """

    @property
    def name(self) -> str:
        """
        Backend identifier.

        Convention: '{device}_{algorithm}', e.g. 'cpu_laplace'.
        """
        ...

    def solve(self, problem: D) -> Result[P]:
        """
        Execute the inference.

        Args:
            problem: Fully assembled problem

        Returns:
            Result envelope containing the posterior summary

        Raises:
            SolverFailure: If the engine does not converge or fails
                internally
        """
        ...
