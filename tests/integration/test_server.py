"""Integration tests for the static file server."""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer, make_mocked_request

from wpt_runner.server import (
    ResolvedPath,
    ServerConfig,
    create_app,
    decode_request_path,
    resolve_path,
    send_file,
    serve,
)

SECRET = "top secret"


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a workspace holding a test root, a resource root and a secret."""
    (tmp_path / "secret.txt").write_text(SECRET)

    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "resources").mkdir()
    (root / "a.html").write_text("<p>a</p>")
    (root / "blob.unknownext").write_bytes(b"\x00\x01")
    (root / "sub" / "index.html").write_text("<p>sub index</p>")
    (root / "sub" / "page.html").write_text("<p>sub page</p>")
    (root / "resources" / "testharness.js").write_text("// vendored harness")

    resources = tmp_path / "shared"
    resources.mkdir()
    (resources / "helper.js").write_text("// shared helper")
    (resources / "nested").mkdir()
    return tmp_path


@pytest.fixture
def config(workspace: Path) -> ServerConfig:
    """Server configuration for the workspace."""
    return ServerConfig(
        test_root=workspace / "root", resource_root=workspace / "shared"
    )


@pytest.fixture
async def client(config: ServerConfig) -> AsyncGenerator[TestClient, None]:
    """HTTP client for a server over the workspace."""
    app = create_app(config.test_root, resource_root=config.resource_root)
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


class TestDecodeRequestPath:
    """Tests for decode_request_path."""

    def test_decodes_percent_escapes(self) -> None:
        """Decodes escapes including encoded dot segments."""
        assert decode_request_path("/a%20b/%2e%2e/c.html") == "/a b/../c.html"

    @pytest.mark.parametrize("raw_path", ["/%ff.html", "/%zz", "/trailing%"])
    def test_rejects_malformed_paths(self, raw_path: str) -> None:
        """Rejects invalid escapes and non UTF-8 bytes with 400."""
        with pytest.raises(web.HTTPBadRequest):
            decode_request_path(raw_path)


class TestResolvePath:
    """Tests for the resolution pipeline."""

    @pytest.mark.parametrize(
        "request_path",
        [
            "/../secret.txt",
            "/../../secret.txt",
            "/sub/../../secret.txt",
            "/resources/../../secret.txt",
            "/../../../../../../etc/passwd",
        ],
    )
    def test_traversal_never_leaves_root(
        self, config: ServerConfig, request_path: str
    ) -> None:
        """Refuses paths that escape the configured roots."""
        assert resolve_path(request_path, config) is None

    def test_resolves_file(self, config: ServerConfig) -> None:
        """Resolves a file to its absolute path and size."""
        resolved = resolve_path("/a.html", config)

        assert resolved == ResolvedPath(
            path=str(config.test_root / "a.html"), size=len("<p>a</p>")
        )

    def test_directory_falls_back_to_index(self, config: ServerConfig) -> None:
        """Resolves a directory to its index document."""
        resolved = resolve_path("/sub/", config)

        assert resolved is not None
        assert resolved.path == str(config.test_root / "sub" / "index.html")

    def test_directory_without_index_is_missing(self, config: ServerConfig) -> None:
        """Does not list directories without an index document."""
        assert resolve_path("/empty", config) is None

    def test_resource_prefix_prefers_resource_root(self, config: ServerConfig) -> None:
        """Serves shared resources from the resource root."""
        resolved = resolve_path("/resources/helper.js", config)

        assert resolved is not None
        assert resolved.path == str(config.resource_root / "helper.js")

    def test_resource_prefix_falls_through_to_test_root(
        self, config: ServerConfig
    ) -> None:
        """Falls back to the test root for resources it does not ship."""
        resolved = resolve_path("/resources/testharness.js", config)

        assert resolved is not None
        assert resolved.path == str(config.test_root / "resources" / "testharness.js")

    def test_resource_directory_falls_through(self, config: ServerConfig) -> None:
        """Falls through for directories under the resource prefix."""
        assert resolve_path("/resources/nested", config) is None

    def test_symlink_inside_root_is_followed(self, config: ServerConfig) -> None:
        """Resolves symlinks that stay within the root to their target."""
        os.symlink(config.test_root / "a.html", config.test_root / "link.html")

        resolved = resolve_path("/link.html", config)

        assert resolved is not None
        assert resolved.path == os.path.realpath(config.test_root / "a.html")

    def test_symlink_outside_root_is_refused(
        self, config: ServerConfig, workspace: Path
    ) -> None:
        """Refuses symlinks whose target lies outside the root."""
        os.symlink(workspace / "secret.txt", config.test_root / "escape.txt")
        os.symlink(workspace, config.test_root / "escape-dir")

        assert resolve_path("/escape.txt", config) is None
        assert resolve_path("/escape-dir/secret.txt", config) is None

    def test_symlinked_directory_uses_index(self, config: ServerConfig) -> None:
        """Resolves a symlinked directory before falling back to its index."""
        os.symlink(config.test_root / "sub", config.test_root / "alias")

        resolved = resolve_path("/alias", config)

        assert resolved is not None
        assert resolved.path == os.path.realpath(
            config.test_root / "sub" / "index.html"
        )

    def test_null_byte_is_missing(self, config: ServerConfig) -> None:
        """Treats paths the file system rejects as missing."""
        assert resolve_path("/a.html\x00.txt", config) is None


class TestHttp:
    """Tests for the HTTP surface."""

    async def test_serves_file_with_headers(self, client: TestClient) -> None:
        """Serves file content with length and type."""
        response = await client.get("/a.html")

        assert response.status == 200
        assert await response.text() == "<p>a</p>"
        assert response.headers["Content-Length"] == str(len("<p>a</p>"))
        assert response.headers["Content-Type"].startswith("text/html")

    async def test_unknown_type_has_no_content_type(self, client: TestClient) -> None:
        """Omits Content-Type when the file type cannot be guessed."""
        response = await client.get("/blob.unknownext")

        assert response.status == 200
        assert await response.read() == b"\x00\x01"
        assert response.headers["Content-Length"] == "2"
        assert "Content-Type" not in response.headers

    async def test_serves_directory_index(self, client: TestClient) -> None:
        """Serves the index document of a directory."""
        response = await client.get("/sub/")

        assert response.status == 200
        assert await response.text() == "<p>sub index</p>"

    async def test_directory_without_index_is_404(self, client: TestClient) -> None:
        """Returns 404 for a directory without an index document."""
        response = await client.get("/empty/")

        assert response.status == 404

    async def test_missing_file_is_404(self, client: TestClient) -> None:
        """Returns 404 for a missing file."""
        response = await client.get("/missing.html")

        assert response.status == 404
        assert await response.text() == "Not Found"

    @pytest.mark.parametrize(
        "path",
        [
            "/../secret.txt",
            "/%2e%2e/secret.txt",
            "/sub/%2e%2e/%2e%2e/secret.txt",
            "/..%2fsecret.txt",
        ],
    )
    async def test_traversal_is_404(self, client: TestClient, path: str) -> None:
        """Never returns content from outside the test root."""
        response = await client.get(path)
        body = await response.text()

        assert response.status == 404
        assert SECRET not in body

    async def test_undecodable_path_is_400(self, client: TestClient) -> None:
        """Returns 400 for a path that is not valid UTF-8."""
        response = await client.get("/%ff.html")

        assert response.status == 400
        assert await response.text() == "Bad Request"

    async def test_query_string_is_ignored(self, client: TestClient) -> None:
        """Resolves the path without its query string."""
        response = await client.get("/a.html?variant=1")

        assert response.status == 200

    async def test_serves_shared_resource(self, client: TestClient) -> None:
        """Serves files from the resource root under the resource prefix."""
        response = await client.get("/resources/helper.js")

        assert response.status == 200
        assert await response.text() == "// shared helper"

    async def test_resource_falls_through_to_test_root(
        self, client: TestClient
    ) -> None:
        """Serves the test root's copy when the resource root lacks a file."""
        response = await client.get("/resources/testharness.js")

        assert response.status == 200
        assert await response.text() == "// vendored harness"

    async def test_only_get_is_allowed(self, client: TestClient) -> None:
        """Rejects methods other than GET."""
        response = await client.post("/a.html")

        assert response.status == 405


async def test_send_file_open_failure_is_500(tmp_path: Path) -> None:
    """Returns 500 when the resolved file cannot be opened."""
    request = make_mocked_request("GET", "/gone.html")
    resolved = ResolvedPath(path=str(tmp_path / "gone.html"), size=10)

    with pytest.raises(web.HTTPInternalServerError) as exc_info:
        await send_file(request, resolved)

    assert exc_info.value.text == "Internal Server Error"


async def test_default_resource_root_ships_report_script(tmp_path: Path) -> None:
    """Serves the bundled testharnessreport.js from the default resource root."""
    async with serve(tmp_path) as base_url:
        url = base_url / "resources" / "testharnessreport.js"
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                assert response.status == 200
                assert "__testharness__done__" in await response.text()


async def test_serve_releases_socket(tmp_path: Path) -> None:
    """Stops listening once the context exits."""
    (tmp_path / "a.html").write_text("a")

    async with serve(tmp_path) as base_url:
        assert base_url.port
        async with aiohttp.ClientSession() as session:
            async with session.get(base_url / "a.html") as response:
                assert await response.text() == "a"

    async with aiohttp.ClientSession() as session:
        with pytest.raises(aiohttp.ClientConnectionError):
            async with session.get(base_url / "a.html"):
                pass
