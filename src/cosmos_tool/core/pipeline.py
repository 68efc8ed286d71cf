"""Multi-step query pipeline: planning and layered execution.

1. Build a dependency graph from ``@step.field`` references in each step's SQL.
2. Peel the graph into layers; a layer holds every step whose dependencies
   are all in earlier layers. A cycle fails planning before anything runs.
3. Run layers in order. A single-step layer runs inline; a wider layer runs
   on a thread pool and is joined before the next layer starts.
4. Each step binds the top-level parameters plus ``@step.field`` values
   taken from the first document of the referenced step.

Step results are only written by the scheduler between layers, so worker
threads read a map that never changes under them.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from cosmos_tool.core.exceptions import (
    CosmosToolError,
    CyclicDependency,
    FieldNotFoundInStepResult,
    InternalInvariantViolation,
    StepFailed,
    StepHasNoRows,
)
from cosmos_tool.core.models import PipelineResult
from cosmos_tool.core.params import build_query_parameters
from cosmos_tool.core.step_refs import find_step_references, referenced_steps

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from cosmos_tool.core.models import QueryResult, StepDefinition

DependencyGraph = dict[str, set[str]]


class QueryExecutor(Protocol):
    def execute_query(
        self,
        container: str,
        sql: str,
        parameters: list[dict[str, Any]] | None = None,
    ) -> QueryResult: ...


def build_dependency_graph(
    step_names: Sequence[str], step_queries: Mapping[str, str]
) -> DependencyGraph:
    """Map each step to the steps its SQL references (itself included, if it does)."""
    return {name: referenced_steps(step_queries[name], step_names) for name in step_names}


def _cycle_members(graph: Mapping[str, set[str]], remaining: Sequence[str]) -> list[str]:
    # Drop steps nothing else still waits on; what survives sits on or
    # between cycles rather than merely downstream of one.
    members = set(remaining)
    while True:
        needed = set().union(*(graph[name] for name in members)) if members else set()
        pruned = members & needed
        if pruned == members:
            return [name for name in remaining if name in members]
        members = pruned


def plan_layers(
    graph: Mapping[str, set[str]], order: Sequence[str] | None = None
) -> list[list[str]]:
    """Topologically layer ``graph``; steps keep ``order`` within each layer.

    Raises CyclicDependency naming the implicated steps.
    """
    remaining = list(order) if order is not None else list(graph)
    scheduled: set[str] = set()
    layers: list[list[str]] = []

    while remaining:
        layer = [name for name in remaining if graph[name] <= scheduled]
        if not layer:
            raise CyclicDependency(_cycle_members(graph, remaining))
        layers.append(layer)
        scheduled.update(layer)
        remaining = [name for name in remaining if name not in scheduled]

    return layers


def plan_pipeline(
    steps: Sequence[StepDefinition], step_queries: Mapping[str, str]
) -> list[list[str]]:
    """Execution layers for a multi-step query, in declaration order."""
    step_names = [step.name for step in steps]
    return plan_layers(build_dependency_graph(step_names, step_queries), step_names)


def build_step_parameters(
    sql: str,
    step_names: Sequence[str],
    params: Mapping[str, Any],
    step_results: Mapping[str, list[Any]],
) -> list[dict[str, Any]]:
    """Wire parameters for one step: top-level params plus resolved step references.

    A reference binds under its literal dotted name, e.g. ``@customer.id``.
    Only the first document of the referenced step is consulted.
    """
    parameters = build_query_parameters(params)

    for step, field in sorted(find_step_references(sql, step_names)):
        if step not in step_results:
            msg = f"step '{step}' has not been executed yet (dependency error)"
            raise InternalInvariantViolation(msg)

        documents = step_results[step]
        if not documents:
            raise StepHasNoRows(step, field)

        first = documents[0]
        if not isinstance(first, dict) or field not in first:
            available = list(first) if isinstance(first, dict) else []
            raise FieldNotFoundInStepResult(step, field, available)

        parameters.append({"name": f"@{step}.{field}", "value": first[field]})

    return parameters


def _run_step(
    executor: QueryExecutor,
    step: StepDefinition,
    sql: str,
    step_names: Sequence[str],
    params: Mapping[str, Any],
    step_results: Mapping[str, list[Any]],
) -> QueryResult:
    log = structlog.get_logger()
    try:
        parameters = build_step_parameters(sql, step_names, params, step_results)
        log.debug("executing step", step=step.name, container=step.container)
        return executor.execute_query(step.container, sql, parameters)
    except CosmosToolError as e:
        raise StepFailed(step.name, e) from e


def run_pipeline(
    executor: QueryExecutor,
    steps: Sequence[StepDefinition],
    step_queries: Mapping[str, str],
    params: Mapping[str, Any],
    *,
    max_workers: int = 4,
    on_step: Callable[[StepDefinition], None] | None = None,
) -> PipelineResult:
    """Execute every step of a multi-step query in dependency order.

    Any step failure aborts the pipeline; later layers never start and
    no partial result is returned.
    """
    log = structlog.get_logger()
    step_names = [step.name for step in steps]
    by_name = {step.name: step for step in steps}

    layers = plan_pipeline(steps, step_queries)
    log.debug("pipeline planned", layers=layers)

    step_results: dict[str, list[Any]] = {}
    total_charge = 0.0

    for index, layer in enumerate(layers):
        outcomes: dict[str, QueryResult] = {}

        if len(layer) == 1:
            name = layer[0]
            if on_step is not None:
                on_step(by_name[name])
            outcomes[name] = _run_step(
                executor,
                by_name[name],
                step_queries[name],
                step_names,
                params,
                step_results,
            )
        else:
            workers = max(1, min(max_workers, len(layer)))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="cosmos-step"
            ) as pool:
                futures = {}
                for name in layer:
                    if on_step is not None:
                        on_step(by_name[name])
                    futures[name] = pool.submit(
                        _run_step,
                        executor,
                        by_name[name],
                        step_queries[name],
                        step_names,
                        params,
                        step_results,
                    )
            # Leaving the pool joined every task; the first failure in
            # declaration order is the one reported.
            for name in layer:
                outcomes[name] = futures[name].result()

        for name in layer:
            step_results[name] = list(outcomes[name].documents)
            total_charge += outcomes[name].request_charge
        log.debug(
            "layer complete",
            layer=index,
            steps=layer,
            documents=sum(len(step_results[name]) for name in layer),
        )

    return PipelineResult(step_results=step_results, total_charge=total_charge)
