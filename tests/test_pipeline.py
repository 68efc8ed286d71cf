"""Tests for step references, pipeline planning and layered execution."""

import threading

import pytest

from cosmos_tool.core.exceptions import (
    ApiError,
    CyclicDependency,
    FieldNotFoundInStepResult,
    InternalInvariantViolation,
    StepFailed,
    StepHasNoRows,
)
from cosmos_tool.core.exit_codes import ExitCode
from cosmos_tool.core.models import QueryResult, StepDefinition
from cosmos_tool.core.pipeline import (
    build_dependency_graph,
    build_step_parameters,
    plan_layers,
    plan_pipeline,
    run_pipeline,
)
from cosmos_tool.core.step_refs import find_step_references, referenced_steps


class RecordingExecutor:
    """Returns canned results per container and records every call."""

    def __init__(self, results=None, failures=None):
        self.results = results or {}
        self.failures = failures or {}
        self.calls = []
        self._lock = threading.Lock()

    def execute_query(self, container, sql, parameters=None):
        with self._lock:
            self.calls.append((container, sql, parameters))
        if container in self.failures:
            raise self.failures[container]
        return self.results.get(container, QueryResult(documents=[]))


def _steps(*names):
    return [StepDefinition(name=n, container=n) for n in names]


# -- Step references --


@pytest.mark.unit
class TestStepReferences:
    def test_finds_known_step_fields(self):
        refs = find_step_references(
            "SELECT * FROM c WHERE c.cid = @customer.id AND c.r = @customer.region",
            ["customer"],
        )
        assert refs == {("customer", "id"), ("customer", "region")}

    def test_plain_params_ignored(self):
        assert find_step_references("WHERE c.x = @name", ["name"]) == set()

    def test_unknown_step_name_ignored(self):
        assert find_step_references("WHERE c.x = @other.id", ["customer"]) == set()

    def test_prefix_of_longer_token_not_matched(self):
        sql = "WHERE c.x = @customerName.id"
        assert find_step_references(sql, ["customer"]) == set()

    def test_email_like_text_not_matched(self):
        sql = "WHERE c.mail = 'bob@customer.id'"
        assert find_step_references(sql, ["customer"]) == set()

    def test_referenced_steps(self):
        sql = "WHERE c.a = @a.id AND c.b = @b.id AND c.x = @a.other"
        assert referenced_steps(sql, ["a", "b", "c"]) == {"a", "b"}


# -- Planning --


@pytest.mark.unit
class TestPlanLayers:
    def test_diamond_layers_keep_declaration_order(self):
        graph = {"A": set(), "B": {"A"}, "C": {"B"}, "D": set()}
        assert plan_layers(graph, ["A", "B", "C", "D"]) == [["A", "D"], ["B"], ["C"]]

    def test_independent_steps_single_layer(self):
        graph = {"x": set(), "y": set(), "z": set()}
        assert plan_layers(graph, ["z", "x", "y"]) == [["z", "x", "y"]]

    def test_fan_in(self):
        graph = {"a": set(), "b": set(), "c": {"a", "b"}}
        assert plan_layers(graph) == [["a", "b"], ["c"]]

    def test_cycle_detected(self):
        graph = {"a": {"b"}, "b": {"a"}}
        with pytest.raises(CyclicDependency) as exc_info:
            plan_layers(graph)
        assert exc_info.value.steps == ["a", "b"]
        assert "circular step dependency" in str(exc_info.value)

    def test_self_reference_is_a_cycle(self):
        with pytest.raises(CyclicDependency) as exc_info:
            plan_layers({"a": {"a"}})
        assert exc_info.value.steps == ["a"]

    def test_cycle_names_only_implicated_steps(self):
        graph = {"root": set(), "a": {"b"}, "b": {"a"}, "after": {"a"}}
        with pytest.raises(CyclicDependency) as exc_info:
            plan_layers(graph, ["root", "a", "b", "after"])
        assert exc_info.value.steps == ["a", "b"]

    def test_every_step_in_exactly_one_layer(self):
        graph = {"a": set(), "b": {"a"}, "c": {"a"}, "d": {"b", "c"}, "e": set()}
        layers = plan_layers(graph, list(graph))
        flat = [s for layer in layers for s in layer]
        assert sorted(flat) == sorted(graph)
        position = {s: i for i, layer in enumerate(layers) for s in layer}
        for step, deps in graph.items():
            assert all(position[d] < position[step] for d in deps)


@pytest.mark.unit
def test_build_dependency_graph_from_sql():
    queries = {
        "customer": "SELECT * FROM c WHERE c.email = @email",
        "orders": "SELECT * FROM c WHERE c.customerId = @customer.id",
    }
    graph = build_dependency_graph(["customer", "orders"], queries)
    assert graph == {"customer": set(), "orders": {"customer"}}


@pytest.mark.unit
def test_plan_pipeline_uses_step_order():
    queries = {"b": "SELECT 1", "a": "SELECT @b.x"}
    assert plan_pipeline(_steps("b", "a"), queries) == [["b"], ["a"]]


# -- Step parameters --


@pytest.mark.unit
class TestBuildStepParameters:
    SQL = "SELECT * FROM c WHERE c.customerId = @customer.id AND c.s = @status"

    def test_binds_first_document_field(self):
        results = {
            "customer": [{"id": "cust-42", "name": "Alice"}, {"id": "cust-99"}]
        }
        wire = build_step_parameters(
            self.SQL, ["customer", "orders"], {"status": "open"}, results
        )
        assert wire == [
            {"name": "@status", "value": "open"},
            {"name": "@customer.id", "value": "cust-42"},
        ]

    def test_empty_step_result(self):
        with pytest.raises(StepHasNoRows) as exc_info:
            build_step_parameters(self.SQL, ["customer"], {}, {"customer": []})
        assert "no results" in str(exc_info.value)
        assert exc_info.value.step == "customer"
        assert exc_info.value.field == "id"

    def test_missing_field_lists_available(self):
        with pytest.raises(FieldNotFoundInStepResult) as exc_info:
            build_step_parameters(
                self.SQL, ["customer"], {}, {"customer": [{"name": "A", "email": "e"}]}
            )
        assert exc_info.value.available == ["name", "email"]
        assert "Available fields: name, email" in str(exc_info.value)

    def test_non_object_document_has_no_fields(self):
        with pytest.raises(FieldNotFoundInStepResult, match="Available fields: none"):
            build_step_parameters(self.SQL, ["customer"], {}, {"customer": ["cust-1"]})

    def test_unexecuted_dependency(self):
        with pytest.raises(InternalInvariantViolation):
            build_step_parameters(self.SQL, ["customer"], {}, {})

    def test_nested_value_bound_as_is(self):
        sql = "SELECT * FROM c WHERE ARRAY_CONTAINS(@a.tags, c.tag)"
        wire = build_step_parameters(sql, ["a"], {}, {"a": [{"tags": ["x", "y"]}]})
        assert wire == [{"name": "@a.tags", "value": ["x", "y"]}]


# -- Execution --


@pytest.mark.unit
class TestRunPipeline:
    def test_diamond_execution_and_total_charge(self):
        steps = _steps("A", "B", "C", "D")
        queries = {
            "A": "SELECT * FROM c",
            "B": "SELECT * FROM c WHERE c.a = @A.id",
            "C": "SELECT * FROM c WHERE c.b = @B.id",
            "D": "SELECT * FROM c",
        }
        executor = RecordingExecutor(
            results={
                "A": QueryResult(documents=[{"id": "a1"}], request_charge=1.0),
                "B": QueryResult(documents=[{"id": "b1"}], request_charge=2.0),
                "C": QueryResult(documents=[{"id": "c1"}], request_charge=3.0),
                "D": QueryResult(documents=[{"id": "d1"}], request_charge=4.0),
            }
        )

        result = run_pipeline(executor, steps, queries, {})

        assert list(result.step_results) == ["A", "D", "B", "C"]
        assert result.total_charge == 10.0
        assert len(executor.calls) == 4
        b_call = next(c for c in executor.calls if c[0] == "B")
        assert b_call[2] == [{"name": "@A.id", "value": "a1"}]
        c_call = next(c for c in executor.calls if c[0] == "C")
        assert c_call[2] == [{"name": "@B.id", "value": "b1"}]

    def test_customer_then_orders(self):
        steps = [
            StepDefinition(name="customer", container="customers"),
            StepDefinition(name="orders", container="orders"),
        ]
        queries = {
            "customer": "SELECT TOP 1 * FROM c WHERE c.name = @name",
            "orders": "SELECT * FROM c WHERE c.customerId = @customer.id",
        }
        executor = RecordingExecutor(
            results={
                "customers": QueryResult(documents=[{"id": "cust-42", "name": "Alice"}]),
                "orders": QueryResult(documents=[{"orderId": 1}, {"orderId": 2}]),
            }
        )

        result = run_pipeline(executor, steps, queries, {"name": "Alice"})

        assert result.step_results["orders"] == [{"orderId": 1}, {"orderId": 2}]
        orders_params = executor.calls[1][2]
        assert {"name": "@customer.id", "value": "cust-42"} in orders_params
        assert {"name": "@name", "value": "Alice"} in orders_params

    def test_cycle_fails_before_any_query(self):
        steps = _steps("a", "b")
        queries = {"a": "SELECT @b.id", "b": "SELECT @a.id"}
        executor = RecordingExecutor()
        with pytest.raises(CyclicDependency):
            run_pipeline(executor, steps, queries, {})
        assert executor.calls == []

    def test_empty_dependency_fails_dependent_step(self):
        steps = _steps("customer", "orders")
        queries = {"customer": "SELECT 1", "orders": "SELECT @customer.id"}
        executor = RecordingExecutor(results={"customer": QueryResult(documents=[])})

        with pytest.raises(StepFailed) as exc_info:
            run_pipeline(executor, steps, queries, {})

        assert exc_info.value.step == "orders"
        assert isinstance(exc_info.value.cause, StepHasNoRows)
        assert "no results" in str(exc_info.value)
        assert "@customer.id" in str(exc_info.value)
        assert len(executor.calls) == 1

    def test_failure_stops_later_layers(self):
        steps = _steps("a", "b", "c")
        queries = {"a": "SELECT 1", "b": "SELECT 2", "c": "SELECT @a.id"}
        executor = RecordingExecutor(failures={"b": ApiError(400, "bad query")})

        with pytest.raises(StepFailed) as exc_info:
            run_pipeline(executor, steps, queries, {})

        assert exc_info.value.step == "b"
        assert exc_info.value.exit_code == ExitCode.API_ERROR
        assert {c[0] for c in executor.calls} == {"a", "b"}

    def test_first_failure_in_declaration_order_reported(self):
        steps = _steps("a", "b")
        queries = {"a": "SELECT 1", "b": "SELECT 2"}
        executor = RecordingExecutor(
            failures={"a": ApiError(400, "first"), "b": ApiError(500, "second")}
        )
        with pytest.raises(StepFailed) as exc_info:
            run_pipeline(executor, steps, queries, {})
        assert exc_info.value.step == "a"

    def test_layer_runs_concurrently(self):
        steps = _steps("a", "b")
        queries = {"a": "SELECT 1", "b": "SELECT 2"}
        barrier = threading.Barrier(2, timeout=5)

        class BarrierExecutor(RecordingExecutor):
            def execute_query(self, container, sql, parameters=None):
                barrier.wait()
                return super().execute_query(container, sql, parameters)

        result = run_pipeline(BarrierExecutor(), steps, queries, {}, max_workers=2)
        assert list(result.step_results) == ["a", "b"]

    def test_on_step_called_per_step(self):
        steps = _steps("a", "b", "c")
        queries = {"a": "SELECT 1", "b": "SELECT 2", "c": "SELECT @a.id"}
        executor = RecordingExecutor(
            results={"a": QueryResult(documents=[{"id": 1}])}
        )
        seen = []
        run_pipeline(executor, steps, queries, {}, on_step=lambda s: seen.append(s.name))
        assert seen == ["a", "b", "c"]

    def test_top_level_params_sent_to_every_step(self):
        steps = _steps("a")
        executor = RecordingExecutor()
        run_pipeline(executor, steps, {"a": "SELECT @x"}, {"x": 1, "y": "z"})
        assert executor.calls[0][2] == [
            {"name": "@x", "value": 1},
            {"name": "@y", "value": "z"},
        ]
