"""
Report Grid Engine.

Resolves the cells of a grid for a selector: classifies the fixed columns,
dispatches each column group to the strategy registered under its key, and
merges the union of all strategy outputs so each (subject, column) appears
once.

Strategies are plain functions ``(selector, columns) -> set[ReportGridCell]``
registered with ``@ReportGridEngine.register("<key>")``; they live in
``waltz.services.report_grid_strategies``.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from itertools import chain
from typing import Iterable

from flask import current_app

from waltz.services.report_grid_classifier import classify_columns
from waltz.services.report_grid_types import (
    EntityFieldRef,
    FixedColumnDefinition,
    ReportGridCell,
    Selector,
    merge_cells,
)

logger = logging.getLogger(__name__)


class ReportGridEngine:
    """Dispatch table from strategy key to fetch function."""

    _STRATEGIES: dict = {}

    @classmethod
    def register(cls, strategy_key: str):
        """Decorator to register a fetch strategy."""
        def decorator(fn):
            cls._STRATEGIES[strategy_key] = fn
            return fn
        return decorator

    @classmethod
    def strategy(cls, strategy_key: str):
        return cls._STRATEGIES.get(strategy_key)

    @classmethod
    def list_strategies(cls) -> list[str]:
        return sorted(cls._STRATEGIES)

    @classmethod
    def resolve(
        cls,
        selector: Selector,
        fixed_columns: Iterable[FixedColumnDefinition],
        field_refs_by_id: dict[int, EntityFieldRef],
        max_workers: int = 1,
    ) -> set[ReportGridCell]:
        """Fetch and merge every cell of ``fixed_columns`` for ``selector``.

        Args:
            selector: Subjects to evaluate.
            fixed_columns: Fixed column definitions of the grid.
            field_refs_by_id: Field references the columns may point at.
            max_workers: >1 runs strategies on a thread pool.

        Returns:
            Set of cells, at most one per (subject_id, column_definition_id).

        Raises:
            UnsupportedOperationError: a strategy cannot serve the selector kind.
        """
        if not selector.ids:
            return set()

        tasks = []
        for key, columns in classify_columns(fixed_columns, field_refs_by_id).by_strategy().items():
            fn = cls._STRATEGIES.get(key)
            if fn is None:
                logger.debug("Strategy %s not registered; %d columns skipped", key, len(columns))
                continue
            tasks.append((key, fn, columns))

        start = time.perf_counter()
        if max_workers > 1 and len(tasks) > 1:
            results = cls._run_pooled(tasks, selector, max_workers)
        else:
            results = [cls._run_one(key, fn, selector, columns) for key, fn, columns in tasks]

        cells = set(merge_cells(chain.from_iterable(results)))
        logger.info(
            "Resolved %d cells from %d strategies (%.0fms)",
            len(cells), len(tasks), (time.perf_counter() - start) * 1000,
            extra={"selector_kind": selector.kind, "selector_size": len(selector.ids),
                   "cell_count": len(cells)},
        )
        return cells

    @staticmethod
    def _run_one(key, fn, selector, columns) -> set[ReportGridCell]:
        cells = fn(selector, columns)
        logger.debug("Strategy %s: %d columns → %d cells", key, len(columns), len(cells),
                     extra={"strategy": key})
        return cells

    @classmethod
    def _run_pooled(cls, tasks, selector, max_workers) -> list[set[ReportGridCell]]:
        app = current_app._get_current_object()

        def _in_context(key, fn, columns):
            with app.app_context():
                return cls._run_one(key, fn, selector, columns)

        results = []
        with ThreadPoolExecutor(max_workers=min(max_workers, len(tasks))) as pool:
            futures = {pool.submit(_in_context, key, fn, columns): key for key, fn, columns in tasks}
            for future in as_completed(futures):
                # .result() re-raises the first strategy failure
                results.append(future.result())
        return results
