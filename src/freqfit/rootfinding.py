"""
Bracketing root finders.

Brent's method combines bisection with secant and inverse quadratic
interpolation while always keeping a bracket around the root. It is used
by quantile functions without a closed form and by L-moment shape solves.

Reference:
    Press, W.H., et al. (2007). Numerical Recipes, 3rd ed., section 9.3.
"""

import math
from typing import Callable, NamedTuple, Tuple

import numpy as np

from .config import (
    BRACKET_FACTOR,
    BRACKET_MAX_ITERATIONS,
    BRENT_MAX_ITERATIONS,
    BRENT_TOLERANCE,
    DOUBLING_MAX_ITERATIONS,
    get_logger,
)
from .exceptions import BracketError, ConvergenceError, ParameterError

# Module logger
_logger = get_logger(__name__)

_EPS = np.finfo(float).eps


class BrentResult(NamedTuple):
    """Result of a Brent solve."""
    root: float
    iterations: int
    converged: bool


# =============================================================================
# BRENT'S METHOD
# =============================================================================

def brent(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    tolerance: float = BRENT_TOLERANCE,
    max_iterations: int = BRENT_MAX_ITERATIONS,
    report_failure: bool = True
) -> BrentResult:
    """
    Find a root of f inside [lower, upper] with Brent's method.

    :param f: continuous scalar function
    :param lower: lower end of the bracket
    :param upper: upper end of the bracket
    :param tolerance: absolute tolerance on the root (default: 1e-8)
    :param max_iterations: iteration budget (default: 1000)
    :param report_failure: raise ConvergenceError when the budget is exhausted;
        otherwise return the current estimate with converged=False
    :return: BrentResult(root, iterations, converged)
    :raises ParameterError: if upper < lower
    :raises BracketError: if f(lower) and f(upper) have the same sign
    :raises ConvergenceError: on budget exhaustion when report_failure is set
    """
    if upper < lower:
        raise ParameterError(
            f"Upper bound ({upper}) must be greater than or equal to "
            f"lower bound ({lower})"
        )

    a, b = float(lower), float(upper)
    fa, fb = f(a), f(b)

    if fa == 0.0:
        return BrentResult(a, 0, True)
    if fb == 0.0:
        return BrentResult(b, 0, True)
    if np.isnan(fa) or np.isnan(fb) or (fa > 0.0) == (fb > 0.0):
        raise BracketError(
            f"Interval [{lower}, {upper}] does not bracket a root: "
            f"f(lower)={fa}, f(upper)={fb}"
        )

    c, fc = b, fb
    d = e = b - a

    for iteration in range(1, max_iterations + 1):
        if (fb > 0.0 and fc > 0.0) or (fb < 0.0 and fc < 0.0):
            # Root lies between a and b; reset c
            c, fc = a, fa
            d = e = b - a

        if abs(fc) < abs(fb):
            a, b, c = b, c, b
            fa, fb, fc = fb, fc, fb

        tol1 = 2.0 * _EPS * abs(b) + 0.5 * tolerance
        xm = 0.5 * (c - b)

        if abs(xm) <= tol1 or fb == 0.0:
            return BrentResult(b, iteration, True)

        if abs(e) >= tol1 and abs(fa) > abs(fb):
            s = fb / fa
            if a == c:
                # Secant step
                p = 2.0 * xm * s
                q = 1.0 - s
            else:
                # Inverse quadratic interpolation
                q = fa / fc
                r = fb / fc
                p = s * (2.0 * xm * q * (q - r) - (b - a) * (r - 1.0))
                q = (q - 1.0) * (r - 1.0) * (s - 1.0)
            if p > 0.0:
                q = -q
            p = abs(p)
            min1 = 3.0 * xm * q - abs(tol1 * q)
            min2 = abs(e * q)
            if 2.0 * p < min(min1, min2):
                e = d
                d = p / q
            else:
                # Interpolation failed; bisect
                d = xm
                e = d
        else:
            d = xm
            e = d

        a, fa = b, fb
        if abs(d) > tol1:
            b += d
        else:
            b += math.copysign(tol1, xm)
        fb = f(b)

    if report_failure:
        raise ConvergenceError(
            f"Brent's method did not converge in {max_iterations} iterations",
            best=b,
        )

    _logger.warning(
        f"Brent's method stopped after {max_iterations} iterations; "
        f"returning best estimate {b}"
    )
    return BrentResult(b, max_iterations, False)


def brent_solve(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    tolerance: float = BRENT_TOLERANCE,
    max_iterations: int = BRENT_MAX_ITERATIONS,
    report_failure: bool = True
) -> float:
    """
    Find a root of f inside [lower, upper] and return it.

    See brent() for the parameters and the raised errors.

    :return: the root
    """
    return brent(f, lower, upper, tolerance, max_iterations, report_failure).root


# =============================================================================
# BRACKET SEARCH
# =============================================================================

def bracket(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    factor: float = BRACKET_FACTOR,
    max_iterations: int = BRACKET_MAX_ITERATIONS
) -> Tuple[float, float]:
    """
    Expand an interval geometrically until it brackets a root.

    The endpoint with the smaller |f| is pushed outward by factor times the
    interval width at each step.

    :param f: continuous scalar function
    :param lower: initial lower end
    :param upper: initial upper end
    :param factor: expansion factor (default: 1.6)
    :param max_iterations: maximum number of expansions (default: 10)
    :return: (lower, upper) with f(lower) and f(upper) of opposite sign
    :raises ParameterError: if lower == upper
    :raises BracketError: if no sign change is found
    """
    if lower == upper:
        raise ParameterError("Initial bracket must have non-zero width")
    if upper < lower:
        lower, upper = upper, lower

    f1, f2 = f(lower), f(upper)
    for _ in range(max_iterations):
        if f1 * f2 <= 0.0:
            return lower, upper
        if abs(f1) < abs(f2):
            lower += factor * (lower - upper)
            f1 = f(lower)
        else:
            upper += factor * (upper - lower)
            f2 = f(upper)

    if f1 * f2 <= 0.0:
        return lower, upper

    raise BracketError(
        f"Failed to bracket a root after {max_iterations} expansions; "
        f"last interval [{lower}, {upper}]"
    )


def expand_upper(
    f: Callable[[float], float],
    lower: float,
    upper: float,
    max_iterations: int = DOUBLING_MAX_ITERATIONS
) -> Tuple[float, float]:
    """
    Move an interval upward, doubling its reach, until f(upper) >= 0.

    Intended for monotone increasing f, such as CDF(x) - p of a discrete
    distribution, where only the upper end of the search is unknown.

    :param f: monotone increasing scalar function
    :param lower: known point with f(lower) < 0
    :param upper: initial upper end, greater than lower
    :param max_iterations: maximum number of doublings (default: 64)
    :return: (lower, upper) with f(lower) < 0 <= f(upper)
    :raises ParameterError: if upper <= lower
    :raises BracketError: if f stays negative after max_iterations doublings
    """
    if upper <= lower:
        raise ParameterError("Upper end must be greater than lower end")

    width = upper - lower
    for _ in range(max_iterations):
        if f(upper) >= 0.0:
            return lower, upper
        lower, upper = upper, upper + width
        width *= 2.0

    raise BracketError(
        f"Function still negative at {upper} after {max_iterations} doublings"
    )
