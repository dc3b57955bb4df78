"""Chunked execution of set-oriented queries.

SQLite refuses statements with more bound parameters than its
compile-time ceiling (999 by default), so queries over arbitrarily
large key sets are split into chunks and run one after the other.
"""
import logging
from typing import (Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar,
                    Union)

from notelinks.config import config

logger = logging.getLogger(__name__)

R = TypeVar("R")

QueryParameter = Union[str, float, int, None]
# A single value for width 1, a tuple of ``width`` values otherwise
Element = Union[QueryParameter, Tuple[QueryParameter, ...]]
Executor = Callable[[str, Dict[str, QueryParameter]], R]


def build_placeholders(count: int, width: int = 1) -> str:
    """Build the placeholder list for *count* elements of *width* values.

    ``build_placeholders(2)`` gives ``":p0,:p1"``,
    ``build_placeholders(2, 2)`` gives ``"(:p0,:p1),(:p2,:p3)"``.
    """
    if width == 1:
        return ",".join(f":p{i}" for i in range(count))
    groups = []
    for i in range(count):
        names = ",".join(f":p{i * width + j}" for j in range(width))
        groups.append(f"({names})")
    return ",".join(groups)


def bind_parameters(
    elements: Sequence[Element], width: int = 1
) -> Dict[str, QueryParameter]:
    """Flatten *elements* into the ``p0..pN`` bind dict."""
    params: Dict[str, QueryParameter] = {}
    for i, element in enumerate(elements):
        if width == 1:
            params[f"p{i}"] = element  # type: ignore[assignment]
            continue
        if not isinstance(element, tuple) or len(element) != width:
            raise ValueError(f"Expected a {width}-tuple, got {element!r}")
        for j, value in enumerate(element):
            params[f"p{i * width + j}"] = value
    return params


def run_batched(
    execute: Executor,
    query_formatter: Callable[[str], str],
    elements: Sequence[Element],
    visitor: Optional[Callable[[Any], None]] = None,
    width: int = 1,
    limit: Optional[int] = None,
) -> None:
    """Run *query_formatter*'s query once per chunk of *elements*.

    Chunks hold at most ``limit // width`` elements and are executed
    strictly in input order; *visitor* sees each chunk's result before
    the next chunk runs. An empty *elements* issues no query at all.
    Errors from *execute* or *visitor* propagate unchanged.

    Args:
        execute: Runs ``(sql, params)`` and returns the chunk result.
        query_formatter: Builds the SQL from a placeholder list string.
        elements: Values (width 1) or tuples (width 2 or 3) to bind.
        visitor: Optional accumulator for each chunk's result.
        width: Number of bound values per element.
        limit: Bound-parameter ceiling, defaults to the configured one.
    """
    if width < 1:
        raise ValueError("width must be >= 1")
    ceiling = limit if limit is not None else config.query_parameter_limit
    chunk_size = ceiling // width
    if chunk_size < 1:
        raise ValueError(f"Parameter limit {ceiling} cannot bind {width}-tuples")

    total = len(elements)
    for offset in range(0, total, chunk_size):
        chunk = elements[offset:offset + chunk_size]
        sql = query_formatter(build_placeholders(len(chunk), width))
        logger.debug(
            f"Batch {offset // chunk_size + 1}: {len(chunk)} of {total} elements"
        )
        result = execute(sql, bind_parameters(chunk, width))
        if visitor is not None:
            visitor(result)
