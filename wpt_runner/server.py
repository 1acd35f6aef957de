"""Static file server for test documents and shared harness resources."""

import asyncio
import logging
import mimetypes
import os
import re
import stat
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

from aiohttp import hdrs, web
from yarl import URL

log = logging.getLogger(__name__)

RESOURCE_ROOT = Path(__file__).parent / "resources"
RESOURCE_PREFIX = "/resources/"
INDEX_DOCUMENT = "index.html"
CHUNK_SIZE = 64 * 1024

MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True, kw_only=True)
class ServerConfig:
    """Roots the server is allowed to read from."""

    test_root: Path
    resource_root: Path = RESOURCE_ROOT


@dataclass(frozen=True, kw_only=True)
class ResolvedPath:
    """A request path resolved to a regular file on disk."""

    path: str
    size: int


SERVER_CONFIG = web.AppKey("server_config", ServerConfig)


class UntypedFileResponse(web.StreamResponse):
    """File response for an unknown type, sent without a Content-Type header."""


async def drop_default_content_type(
    request: web.Request, response: web.StreamResponse
) -> None:
    """Remove the octet-stream default aiohttp adds to untyped responses."""
    if isinstance(response, UntypedFileResponse):
        response.headers.popall(hdrs.CONTENT_TYPE, None)


def decode_request_path(raw_path: str) -> str:
    """Percent-decode a raw URL path.

    Raises:
        web.HTTPBadRequest: If the path holds a malformed escape or does not
            decode to UTF-8

    """
    if MALFORMED_ESCAPE.search(raw_path):
        raise web.HTTPBadRequest(text="Bad Request")
    try:
        return unquote(raw_path, errors="strict")
    except UnicodeDecodeError as e:
        raise web.HTTPBadRequest(text="Bad Request") from e


def is_within(path: str, root: str) -> bool:
    """Check that path equals root or lies below it, lexically."""
    root = root.rstrip(os.sep)
    return path == root or path.startswith(root + os.sep)


def join_within(root: str, request_path: str) -> str | None:
    """Join a decoded request path onto root, refusing to leave root."""
    candidate = os.path.normpath(os.path.join(root, request_path.lstrip("/")))
    if not is_within(candidate, root):
        return None
    return candidate


def stat_entry(path: str, real_root: str) -> tuple[str, os.stat_result] | None:
    """Stat a path, following a symlink only if it stays inside real_root."""
    try:
        st = os.lstat(path)
    except (OSError, ValueError):
        return None

    if stat.S_ISLNK(st.st_mode):
        path = os.path.realpath(path)
        if not is_within(path, real_root):
            return None
        try:
            st = os.stat(path)
        except (OSError, ValueError):
            return None

    return path, st


def resolve_in_root(
    request_path: str, root: Path, *, index_fallback: bool
) -> ResolvedPath | None:
    """Resolve a decoded request path to a regular file under root.

    The lexical containment check happens before any file-system access.
    Symlinks are resolved before the directory index fallback, and the final
    real path must still lie inside the real root.
    """
    root_path = os.path.abspath(root)
    if (candidate := join_within(root_path, request_path)) is None:
        return None

    real_root = os.path.realpath(root_path)
    if (entry := stat_entry(candidate, real_root)) is None:
        return None
    path, st = entry

    if stat.S_ISDIR(st.st_mode):
        if not index_fallback:
            return None
        if (entry := stat_entry(os.path.join(path, INDEX_DOCUMENT), real_root)) is None:
            return None
        path, st = entry

    if not stat.S_ISREG(st.st_mode):
        return None

    if not is_within(os.path.realpath(path), real_root):
        return None

    return ResolvedPath(path=path, size=st.st_size)


def resolve_path(request_path: str, config: ServerConfig) -> ResolvedPath | None:
    """Resolve a decoded request path against the resource and test roots.

    Paths under the resource prefix are tried against the resource root
    first; anything not found there falls through to the test root.
    """
    if request_path.startswith(RESOURCE_PREFIX):
        resource = resolve_in_root(
            request_path[len(RESOURCE_PREFIX) :],
            config.resource_root,
            index_fallback=False,
        )
        if resource is not None:
            return resource

    return resolve_in_root(request_path, config.test_root, index_fallback=True)


async def send_file(request: web.Request, resolved: ResolvedPath) -> web.StreamResponse:
    """Stream a resolved file into the response without buffering it."""
    try:
        handle = await asyncio.to_thread(open, resolved.path, "rb")
    except OSError as e:
        log.warning("Failed to open %s: %s", request.path, e)
        raise web.HTTPInternalServerError(text="Internal Server Error") from e

    try:
        response: web.StreamResponse
        content_type, _ = mimetypes.guess_type(resolved.path)
        if content_type is None:
            response = UntypedFileResponse(status=200)
        else:
            response = web.StreamResponse(status=200)
            response.content_type = content_type
        response.content_length = resolved.size

        await response.prepare(request)
        while chunk := await asyncio.to_thread(handle.read, CHUNK_SIZE):
            await response.write(chunk)
    finally:
        await asyncio.to_thread(handle.close)

    await response.write_eof()
    return response


async def handle_request(request: web.Request) -> web.StreamResponse:
    """Serve a GET request from the configured roots."""
    config = request.app[SERVER_CONFIG]
    request_path = decode_request_path(request.rel_url.raw_path)

    resolved = await asyncio.to_thread(resolve_path, request_path, config)
    if resolved is None:
        log.debug("Not found: %s", request.rel_url.raw_path)
        raise web.HTTPNotFound(text="Not Found")

    return await send_file(request, resolved)


def create_app(
    test_root: Path, *, resource_root: Path = RESOURCE_ROOT
) -> web.Application:
    """Create the static file application for a test root."""
    app = web.Application()
    app[SERVER_CONFIG] = ServerConfig(test_root=test_root, resource_root=resource_root)
    app.on_response_prepare.append(drop_default_content_type)
    app.router.add_route("GET", "/{path:.*}", handle_request)
    return app


@asynccontextmanager
async def serve(
    test_root: Path,
    *,
    resource_root: Path = RESOURCE_ROOT,
    host: str = "127.0.0.1",
    port: int = 0,
) -> AsyncGenerator[URL, None]:
    """Run the server for the duration of the context and yield its base URL.

    With the default port of 0 an ephemeral port is bound. The listening
    socket is released when the context exits, on every exit path.
    """
    runner = web.AppRunner(create_app(test_root, resource_root=resource_root))
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, port)
        await site.start()

        bound_port = runner.addresses[0][1]
        base_url = URL.build(scheme="http", host=host, port=bound_port)
        log.info("Serving %s on %s", test_root, base_url)
        yield base_url
    finally:
        await runner.cleanup()
        log.debug("Server for %s stopped", test_root)


def run_server(
    test_root: Path,
    *,
    resource_root: Path = RESOURCE_ROOT,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Serve the test root until the process is interrupted."""
    web.run_app(
        create_app(test_root, resource_root=resource_root),
        host=host,
        port=port,
        print=log.info,
    )
