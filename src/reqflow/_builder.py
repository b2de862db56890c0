import re
import threading
from typing import Any, Iterator, Optional
from urllib.parse import urlencode

import httpx

from ._codec import Codec, default_codec
from .models.context import CONTEXT_EXTENSION, ExecutionContext
from .models.errors import RequestConstructionError
from .transports._base import Decorator, NetworkTransport, as_transport_error, compose

# RFC 9110 token
_METHOD_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class Builder:
    """Fluent description of a single HTTP request.

    Configuration calls return the builder so they can be chained. A builder
    is meant to describe one logical request: reusing it for unrelated calls
    carries its headers and decorators along.

    Examples:
        ```python
        from reqflow import Builder, logging_transport, timeout_transport

        out = {}
        Builder().url("https://api.example.com/items").method("POST").req(
            {"name": "item"}
        ).resp(out).wrap_transport(
            logging_transport("catalog"), timeout_transport(2)
        ).do()
        ```
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._url = ""
        self._base_url = ""
        self._method = ""
        self._codec: Optional[Codec] = None
        self._req: Any = None
        self._resp: Any = None
        self._params: dict[str, list[str]] = {}
        self._headers: list[tuple[str, str]] = []

        self._transport = transport
        self._decorators: tuple[Decorator, ...] = ()
        self._lock = threading.Lock()
        self._version = 0
        # (version, client) published atomically after each rebuild
        self._snapshot: Optional[tuple[int, httpx.Client]] = None

    def url(self, url: str) -> "Builder":
        self._url = url
        return self

    def base_url(self, base_url: str) -> "Builder":
        """Set a prefix joined verbatim in front of the URL."""
        self._base_url = base_url
        return self

    def method(self, method: str) -> "Builder":
        self._method = method
        return self

    def codec(self, codec: Codec) -> "Builder":
        self._codec = codec
        return self

    def req(self, req: Any) -> "Builder":
        """Set the value encoded as the request body."""
        self._req = req
        return self

    def resp(self, resp: Any) -> "Builder":
        """Set the mutable target the response body is decoded into."""
        self._resp = resp
        return self

    def query_string(self, key: str, value: str) -> "Builder":
        self._params.setdefault(key, []).append(value)
        return self

    def header(self, key: str, value: str) -> "Builder":
        self._headers.append((key, value))
        return self

    def transport(self, transport: httpx.BaseTransport) -> "Builder":
        """Replace the network transport at the bottom of the chain."""
        with self._lock:
            self._transport = transport
            self._version += 1
        return self

    def wrap_transport(self, *decorators: Decorator) -> "Builder":
        """Append decorators; the first one given becomes the outermost."""
        with self._lock:
            self._decorators = (*self._decorators, *decorators)
            self._version += 1
        return self

    def do(self, context: Optional[ExecutionContext] = None) -> httpx.Response:
        """Send the request and decode the response into the target.

        Args:
            context: Execution context carrying deadline, cancellation and
                request-scoped values. Defaults to an empty context.

        Returns:
            httpx.Response: The closed response, for status and headers. A
                non-2xx status is not treated as an error and redirects are
                returned, not followed.

        Raises:
            RequestConstructionError: The URL or method is malformed.
            EncodingError: The request body could not be encoded.
            TransportError: The transport failed to produce a response.
            DecodingError: The response body could not be decoded.
        """
        if context is None:
            context = ExecutionContext.background()

        url = self._build_url()
        method = self._build_method()
        codec = self._build_codec()

        content: Optional[bytes] = None
        if self._req is not None:
            content = codec.encode(self._req)

        client = self._build_client()
        request = self._build_request(client, method, url, codec, content, context)

        try:
            response = client.send(request, stream=True)
        except httpx.RequestError as e:
            raise as_transport_error(e) from e

        try:
            if self._resp is not None:
                codec.decode(_iter_body(response, context), self._resp)
        except httpx.RequestError as e:
            raise as_transport_error(e) from e
        finally:
            response.close()
        return response

    def _build_url(self) -> str:
        url = self._url
        if self._base_url:
            url = self._base_url + self._url
        if not url:
            raise RequestConstructionError("request URL is empty")
        if self._params:
            query = urlencode(
                [(key, value) for key in sorted(self._params) for value in self._params[key]]
            )
            url = url + ("&" if "?" in url else "?") + query
        return url

    def _build_method(self) -> str:
        method = self._method or "GET"
        if not _METHOD_PATTERN.match(method):
            raise RequestConstructionError(f"invalid method {method!r}")
        return method

    def _build_codec(self) -> Codec:
        return self._codec if self._codec is not None else default_codec

    def _build_client(self) -> httpx.Client:
        snapshot = self._snapshot
        if snapshot is not None and snapshot[0] == self._version:
            return snapshot[1]

        with self._lock:
            snapshot = self._snapshot
            if snapshot is not None and snapshot[0] == self._version:
                return snapshot[1]
            transport = compose(NetworkTransport(self._transport), self._decorators)
            client = httpx.Client(
                transport=transport, timeout=None, follow_redirects=False
            )
            self._snapshot = (self._version, client)
            return client

    def _build_request(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        codec: Codec,
        content: Optional[bytes],
        context: ExecutionContext,
    ) -> httpx.Request:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise RequestConstructionError(f"invalid URL {url!r}: {e}") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise RequestConstructionError(
                f"invalid URL {url!r}: expected an absolute http(s) URL"
            )

        headers = httpx.Headers(self._headers)
        content_type = getattr(codec, "content_type", None)
        if content is not None and content_type and "content-type" not in headers:
            headers["Content-Type"] = content_type

        try:
            return client.build_request(
                method,
                parsed,
                content=content,
                headers=headers,
                extensions={CONTEXT_EXTENSION: context},
            )
        except (httpx.InvalidURL, ValueError) as e:
            raise RequestConstructionError(str(e)) from e


def _iter_body(
    response: httpx.Response, context: ExecutionContext
) -> Iterator[bytes]:
    for chunk in response.iter_bytes():
        error = context.error()
        if error is not None:
            raise error
        yield chunk


def new() -> Builder:
    return Builder()


def url(url: str) -> Builder:
    return Builder().url(url)


def base_url(base_url: str) -> Builder:
    return Builder().base_url(base_url)


def method(method: str) -> Builder:
    return Builder().method(method)


def req(req: Any) -> Builder:
    return Builder().req(req)


def resp(resp: Any) -> Builder:
    return Builder().resp(resp)


def query_string(key: str, value: str) -> Builder:
    return Builder().query_string(key, value)


def header(key: str, value: str) -> Builder:
    return Builder().header(key, value)


def wrap_transport(*decorators: Decorator) -> Builder:
    return Builder().wrap_transport(*decorators)
