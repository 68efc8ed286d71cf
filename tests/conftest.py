"""Shared test fixtures for Cosmos Tool."""

import functools
import json
import shutil
from pathlib import Path
from tempfile import TemporaryDirectory

import httpx
import pytest
from typer.testing import CliRunner

from cosmos_tool.cli.main import app
from cosmos_tool.core.client import CosmosClient
from cosmos_tool.core.config import ResolvedConfig

ENDPOINT = "https://acct.documents.azure.com"
FIXTURE_QUERIES = Path(__file__).parent / "fixtures" / "queries"


class FakeCosmos:
    """In-memory Cosmos DB data plane served through httpx.MockTransport.

    ``pages[(container, range_id)]`` holds the documents of each page in
    order; a continuation token is returned until the last page.
    ``handlers[container]`` replaces paging with ``fn(body) -> documents``.
    ``failures[container]`` answers every query on that container with
    ``(status, body)``.
    """

    def __init__(self) -> None:
        self.databases: list[str] = ["shop"]
        self.containers: dict[str, list[str]] = {"shop": ["customers", "orders"]}
        self.ranges: dict[str, list[str]] = {}
        self.pages: dict[tuple[str, str], list[list]] = {}
        self.handlers: dict[str, object] = {}
        self.failures: dict[str, tuple[int, str]] = {}
        self.charge: str | None = "1.5"
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def query_requests(self, container: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == "POST"
            and (container is None or r.url.path.split("/")[4] == container)
        ]

    def _headers(self, continuation: str | None = None) -> dict[str, str]:
        headers = {}
        if self.charge is not None:
            headers["x-ms-request-charge"] = self.charge
        if continuation is not None:
            headers["x-ms-continuation"] = continuation
        return headers

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")

        if parts == ["dbs"]:
            return httpx.Response(
                200, json={"Databases": [{"id": d} for d in self.databases]}
            )
        if len(parts) == 3 and parts[2] == "colls":
            names = self.containers.get(parts[1], [])
            return httpx.Response(
                200, json={"DocumentCollections": [{"id": c} for c in names]}
            )

        container = parts[3]
        if parts[-1] == "pkranges":
            ids = self.ranges.get(container, ["0"])
            return httpx.Response(
                200, json={"PartitionKeyRanges": [{"id": i} for i in ids]}
            )

        if container in self.failures:
            status, body = self.failures[container]
            return httpx.Response(status, text=body)

        body = json.loads(request.content)
        if container in self.handlers:
            docs = self.handlers[container](body)
            return httpx.Response(200, json={"Documents": docs}, headers=self._headers())

        range_id = request.headers["x-ms-documentdb-partitionkeyrangeid"]
        pages = self.pages.get((container, range_id), [[]])
        index = int(request.headers.get("x-ms-continuation", "0"))
        continuation = str(index + 1) if index + 1 < len(pages) else None
        return httpx.Response(
            200,
            json={"Documents": pages[index]},
            headers=self._headers(continuation),
        )


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep user config files and COSMOS_* variables out of every test."""
    for var in (
        "COSMOS_ENDPOINT",
        "COSMOS_DATABASE",
        "COSMOS_CONTAINER",
        "COSMOS_TOKEN",
        "COSMOS_PROFILE",
        "COSMOS_TOOL_SENTRY_DSN",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        "cosmos_tool.core.config.DEFAULT_CONFIG_PATH", tmp_path / "no-config.toml"
    )


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_runner(runner):
    """Invoke the CLI app with the given arguments."""

    def invoke(*args: str, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_cosmos():
    return FakeCosmos()


@pytest.fixture
def resolved_config():
    return ResolvedConfig(
        endpoint=ENDPOINT,
        database="shop",
        container="orders",
        token="secret-token",  # pragma: allowlist secret
    )


@pytest.fixture
def cosmos_client(fake_cosmos, resolved_config):
    with CosmosClient(resolved_config, transport=fake_cosmos.transport) as client:
        yield client


@pytest.fixture
def cosmos_cli(monkeypatch, fake_cosmos):
    """Point the CLI at the fake data plane through the usual env variables."""
    monkeypatch.setenv("COSMOS_ENDPOINT", ENDPOINT)
    monkeypatch.setenv("COSMOS_DATABASE", "shop")
    monkeypatch.setenv("COSMOS_TOKEN", "secret-token")  # pragma: allowlist secret
    monkeypatch.setattr(
        "cosmos_tool.cli.commands._shared.CosmosClient",
        functools.partial(CosmosClient, transport=fake_cosmos.transport),
    )
    return fake_cosmos


@pytest.fixture
def stored_queries(tmp_path, monkeypatch):
    """Config file whose queries_dir holds the fixture queries; cwd is isolated.

    Returns the config path; pass it with ``--config``.
    """
    queries_dir = tmp_path / "queries"
    shutil.copytree(FIXTURE_QUERIES, queries_dir)
    config_path = tmp_path / "config.toml"
    config_path.write_text(f'queries_dir = "{queries_dir}"\n')
    monkeypatch.chdir(tmp_path)
    return config_path
