"""Stored query files: YAML front matter plus a SQL body.

A stored query lives in ``<name>.sql``::

    ---
    description: Orders for a customer
    database: shop
    params:
      - name: email
        type: string
    steps:
      - name: customer
        container: customers
      - name: orders
        container: orders
    ---
    -- step: customer
    SELECT TOP 1 * FROM c WHERE c.email = @email

    -- step: orders
    SELECT * FROM c WHERE c.customerId = @customer.id

Without ``steps`` the whole body is one query. With ``steps`` the body is
split on ``-- step: <name>`` lines, one body per declared step.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from cosmos_tool.core.exceptions import CyclicDependency, StoredQueryError
from cosmos_tool.core.models import StepDefinition
from cosmos_tool.core.params import ParameterDefinition
from cosmos_tool.core.pipeline import plan_pipeline

if TYPE_CHECKING:
    from collections.abc import Iterable

QUERY_SUFFIX = ".sql"
PROJECT_QUERIES_DIR = Path(".cosmos-tool") / "queries"

_FRONT_MATTER_DELIM = "---"
_STEP_DELIM_RE = re.compile(r"^--[ \t]*step:[ \t]*(\S+)[ \t]*$", re.MULTILINE)


def _duplicates(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


class StoredQueryMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    database: str | None = None
    container: str | None = None
    params: list[ParameterDefinition] = []
    steps: list[StepDefinition] | None = None

    @field_validator("params")
    @classmethod
    def validate_unique_params(
        cls, v: list[ParameterDefinition]
    ) -> list[ParameterDefinition]:
        dupes = _duplicates(p.name for p in v)
        if dupes:
            msg = f"Duplicate parameter names: {', '.join(dupes)}"
            raise ValueError(msg)
        return v

    @field_validator("steps")
    @classmethod
    def validate_unique_steps(
        cls, v: list[StepDefinition] | None
    ) -> list[StepDefinition] | None:
        if v is None:
            return v
        if not v:
            msg = "steps must not be empty when present"
            raise ValueError(msg)
        dupes = _duplicates(s.name for s in v)
        if dupes:
            msg = f"Duplicate step names: {', '.join(dupes)}"
            raise ValueError(msg)
        return v


class StoredQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    metadata: StoredQueryMetadata
    sql: str
    step_queries: dict[str, str] = {}
    path: Path | None = None

    @property
    def is_multi_step(self) -> bool:
        return self.metadata.steps is not None

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self.metadata.steps or []]

    def execution_order(self) -> list[list[str]]:
        """Execution layers; a single-step query has no layers."""
        if not self.metadata.steps:
            return []
        return plan_pipeline(self.metadata.steps, self.step_queries)


def _split_front_matter(contents: str) -> tuple[str, str]:
    text = contents.lstrip()
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIM:
        msg = "missing front matter delimiters (---)"
        raise StoredQueryError(msg)

    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONT_MATTER_DELIM:
            return "".join(lines[1:index]), "".join(lines[index + 1 :])

    msg = "missing closing front matter delimiter (---)"
    raise StoredQueryError(msg)


def split_steps(body: str, step_names: list[str]) -> dict[str, str]:
    """Split a multi-step body into ``{step: sql}``.

    Raises StoredQueryError for text before the first delimiter, bodies
    for undeclared or repeated steps, empty bodies and missing steps.
    """
    matches = list(_STEP_DELIM_RE.finditer(body))
    if not matches:
        msg = "multi-step query has no '-- step: <name>' sections"
        raise StoredQueryError(msg)

    if body[: matches[0].start()].strip():
        msg = "text found before the first '-- step:' section"
        raise StoredQueryError(msg)

    declared = set(step_names)
    step_queries: dict[str, str] = {}
    for index, match in enumerate(matches):
        name = match.group(1)
        end = matches[index + 1].start() if index + 1 < len(matches) else len(body)
        sql = body[match.end() : end].strip()

        if name not in declared:
            msg = f"section '-- step: {name}' does not match any declared step"
            raise StoredQueryError(msg)
        if name in step_queries:
            msg = f"step '{name}' has more than one SQL section"
            raise StoredQueryError(msg)
        if not sql:
            msg = f"step '{name}' has an empty SQL body"
            raise StoredQueryError(msg)
        step_queries[name] = sql

    missing = [name for name in step_names if name not in step_queries]
    if missing:
        msg = f"no SQL section for step(s): {', '.join(missing)}"
        raise StoredQueryError(msg)

    return step_queries


def parse_stored_query(
    name: str, contents: str, path: Path | None = None
) -> StoredQuery:
    """Parse the contents of a stored query file.

    Multi-step queries are also planned here, so a cycle between steps is
    reported when the file is read rather than when it runs.
    """
    header, body = _split_front_matter(contents)

    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as e:
        msg = f"stored query '{name}': invalid YAML front matter: {e}"
        raise StoredQueryError(msg) from e
    if not isinstance(data, dict):
        msg = f"stored query '{name}': front matter must be a mapping"
        raise StoredQueryError(msg)

    try:
        metadata = StoredQueryMetadata.model_validate(data)
    except ValidationError as e:
        msg = f"stored query '{name}': invalid metadata: {e}"
        raise StoredQueryError(msg) from e

    sql = body.strip()
    if not sql:
        msg = f"stored query '{name}' has no SQL body"
        raise StoredQueryError(msg)

    step_queries: dict[str, str] = {}
    if metadata.steps is not None:
        try:
            step_queries = split_steps(body, [s.name for s in metadata.steps])
        except StoredQueryError as e:
            raise StoredQueryError(f"stored query '{name}': {e.message}") from e

    query = StoredQuery(
        name=name, metadata=metadata, sql=sql, step_queries=step_queries, path=path
    )
    try:
        query.execution_order()
    except CyclicDependency as e:
        raise StoredQueryError(f"stored query '{name}': {e.message}") from e
    return query


def load_stored_query(path: Path) -> StoredQuery:
    try:
        contents = path.read_text()
    except OSError as e:
        msg = f"Cannot read stored query {path}: {e}"
        raise StoredQueryError(msg) from e
    return parse_stored_query(path.stem, contents, path=path)


def project_queries_dir() -> Path:
    return Path.cwd() / PROJECT_QUERIES_DIR


def _query_dirs(user_dir: Path | None, project_dir: Path | None) -> list[Path]:
    # Lowest precedence first
    return [d for d in (user_dir, project_dir) if d is not None and d.is_dir()]


def find_stored_query(
    name: str,
    user_dir: Path | None,
    project_dir: Path | None = None,
) -> StoredQuery:
    """Locate ``name`` in the project directory, then the user directory."""
    filename = name if name.endswith(QUERY_SUFFIX) else f"{name}{QUERY_SUFFIX}"
    for directory in reversed(_query_dirs(user_dir, project_dir)):
        path = directory / filename
        if path.is_file():
            return load_stored_query(path)

    searched = ", ".join(str(d) for d in (project_dir, user_dir) if d is not None)
    msg = f"Stored query '{name}' not found (searched: {searched or 'nothing'})"
    raise StoredQueryError(msg)


def list_stored_queries(
    user_dir: Path | None,
    project_dir: Path | None = None,
) -> list[StoredQuery]:
    """All loadable stored queries, sorted by name; project copies shadow user ones."""
    log = structlog.get_logger()
    queries: dict[str, StoredQuery] = {}

    for directory in _query_dirs(user_dir, project_dir):
        for path in sorted(directory.glob(f"*{QUERY_SUFFIX}")):
            try:
                query = load_stored_query(path)
            except StoredQueryError as e:
                log.warning("skipping stored query", path=str(path), error=e.message)
                continue
            queries[query.name] = query

    return [queries[name] for name in sorted(queries)]

