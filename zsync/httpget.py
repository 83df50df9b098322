"""Plain HTTP/1.0 GET for control files, plus shared HTTP settings.

HttpConfig holds the proxy, per-host credentials and referer that every
request made by the client shares.
"""

from __future__ import annotations

import base64
import os
import re
import socket
import tempfile
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import BinaryIO, Iterable, Iterator
from urllib.parse import urljoin

HTTP_SCHEME = "http://"
ZSYNC_VERSION = "0.6.2"
USER_AGENT = f"zsync/{ZSYNC_VERSION}"
DEFAULT_PROXY_PORT = "webcache"
MAX_REDIRECTS = 5
_COPY_CHUNK = 1024
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class HttpError(Exception):
    """Raised when an HTTP request cannot be made or is refused."""


def base64_encode(text: str | bytes) -> str:
    """Return the padded base64 encoding of text."""
    raw = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    return base64.b64encode(raw).decode("ascii")


def split_http_url(url: str) -> tuple[str, str, str]:
    """Split an http:// URL into (host, port, path).

    The port is "http" when the URL names none; the path is "/" when empty.
    """
    if not url.startswith(HTTP_SCHEME):
        raise HttpError(f"not an http URL: {url}")
    rest = url[len(HTTP_SCHEME):]
    slash = rest.find("/")
    authority, path = (rest, "/") if slash == -1 else (rest[:slash], rest[slash:])
    host, sep, port = authority.partition(":")
    if not host:
        raise HttpError(f"no host in URL: {url}")
    return host, (port if sep and port else "http"), path


@dataclass
class HttpConfig:
    """Proxy, credentials and referer shared by all requests."""

    proxy: str | None = None
    proxy_port: str | None = None
    referer: str | None = None
    credentials: list[tuple[str, str, str]] = field(default_factory=list)

    def set_proxy_from_string(self, text: str) -> None:
        """Use a proxy given as host[:port] or http://host[:port]."""
        if text.startswith(HTTP_SCHEME):
            host, port, _ = split_http_url(text)
            self.proxy, self.proxy_port = host, port
            return
        host, sep, port = text.partition(":")
        self.proxy = host
        self.proxy_port = port if sep else DEFAULT_PROXY_PORT

    def add_auth(self, host: str, user: str, password: str) -> None:
        """Use this user and password when connecting to host."""
        self.credentials.append((host, user, password))

    def auth_header(self, host: str) -> str | None:
        """Return the Authorization header line for host, or None."""
        wanted = host.lower()
        for known_host, user, password in self.credentials:
            if known_host.lower() == wanted:
                return f"Authorization: Basic {base64_encode(f'{user}:{password}')}\r\n"
        return None


def http_date_string(timestamp: float) -> str:
    """Format a POSIX timestamp as an HTTP date."""
    return formatdate(timestamp, usegmt=True)


def _as_text(line: str | bytes) -> str:
    return line.decode("latin-1") if isinstance(line, (bytes, bytearray)) else line


def parse_status_line(line: str | bytes) -> int:
    """Return the status code of an HTTP/1.x status line."""
    text = _as_text(line)
    space = text.find(" ")
    if not text.startswith("HTTP/1") or space == -1:
        raise HttpError(f"not an HTTP status line: {text!r}")
    match = _LEADING_INT.match(text, space + 1)
    return int(match.group(1)) if match else 0


def find_location(lines: Iterable[str | bytes], current_url: str) -> str | None:
    """Find the Location header among response header lines.

    Returns it made absolute against current_url, or None if absent.
    """
    for raw in lines:
        line = _as_text(raw)
        if not line or line[0] in "\r\n":
            return None
        name, sep, value = line.partition(":")
        if not sep:
            return None
        if name.lower() != "location":
            continue
        value = value.lstrip(" ")
        end = len(value)
        for stop in "\r\n ":
            found = value.find(stop)
            if found != -1:
                end = min(end, found)
        value = value[:end]
        if not value:
            return None
        return urljoin(current_url, value)
    return None


def connect_to(node: str, service: str) -> socket.socket:
    """Open a TCP connection to node at the given port or service name."""
    try:
        candidates = socket.getaddrinfo(node, service, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise HttpError(f"{node}: {exc}") from exc
    last_error: OSError | None = None
    for family, socktype, proto, _, address in candidates:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_error = exc
            continue
        try:
            sock.connect(address)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        return sock
    raise HttpError(f"{node}: {last_error or 'no usable address'}")


def _header_lines(stream: BinaryIO) -> Iterator[bytes]:
    while True:
        line = stream.readline()
        if not line:
            return
        yield line


def _skip_headers(stream: BinaryIO) -> None:
    for line in _header_lines(stream):
        if line[:1] in (b"\r", b"\n"):
            return


def _conditional_headers(target: str) -> tuple[str, str]:
    """Return the .part name and headers asking only for new content."""
    part_name = target + ".part"
    try:
        st = os.stat(part_name)
    except FileNotFoundError:
        try:
            st = os.stat(target)
        except OSError:
            return part_name, ""
        return part_name, f"If-Modified-Since: {http_date_string(st.st_mtime)}\r\n"
    except OSError:
        return part_name, ""
    return part_name, (
        f"If-Unmodified-Since: {http_date_string(st.st_mtime)}\r\n"
        f"Range: bytes={st.st_size}-\r\n"
    )


def _open_response(url: str, config: HttpConfig, conditional: str) -> tuple[BinaryIO, int]:
    host, port, path = split_http_url(url)
    if config.proxy:
        connect_host, connect_port = config.proxy, config.proxy_port or DEFAULT_PROXY_PORT
    else:
        connect_host, connect_port = host, port
    sock = connect_to(connect_host, connect_port)
    host_header = host if port == "http" else f"{host}:{port}"
    request = (
        f"GET {url if config.proxy else path} HTTP/1.0\r\n"
        f"Host: {host_header}\r\n"
        f"User-Agent: {USER_AGENT}\r\n"
        f"{conditional}{config.auth_header(host) or ''}\r\n"
    )
    try:
        sock.sendall(request.encode("latin-1"))
        stream = sock.makefile("rb")
    except OSError as exc:
        sock.close()
        raise HttpError(f"sending request to {url}: {exc}") from exc
    sock.close()
    try:
        code = parse_status_line(stream.readline())
    except (HttpError, OSError) as exc:
        stream.close()
        raise HttpError(f"failed on url {url}: {exc}") from exc
    return stream, code


def http_get(
    url: str,
    config: HttpConfig | None = None,
    target_filename: str | os.PathLike[str] | None = None,
) -> tuple[BinaryIO, str]:
    """Fetch url and return (binary file positioned at 0, final URL).

    With target_filename, an existing copy or .part of it is reused where
    the server allows, and the downloaded content is kept under that name.
    """
    config = config if config is not None else HttpConfig()
    target = os.fspath(target_filename) if target_filename is not None else None
    part_name, conditional = _conditional_headers(target) if target else (None, "")

    current: str | None = url
    for _ in range(MAX_REDIRECTS):
        if current is None:
            break
        stream, code = _open_response(current, config, conditional)
        if code in (301, 302, 307):
            with stream:
                current = find_location(_header_lines(stream), current)
            continue
        if code == 412:
            stream.close()
            conditional = ""
            continue
        if code == 304:
            stream.close()
            if target is None:
                raise HttpError(f"{current}: not modified, but no local copy")
            return open(target, "rb"), current
        if code == 200:
            output: BinaryIO = open(part_name, "w+b") if part_name else tempfile.TemporaryFile()
        elif code == 206 and part_name:
            output = open(part_name, "a+b")
        else:
            stream.close()
            raise HttpError(f"failed on url {current}: status {code}")

        with stream:
            _skip_headers(stream)
            while chunk := stream.read(_COPY_CHUNK):
                output.write(chunk)
        output.flush()
        output.seek(0)
        if part_name and target:
            os.replace(part_name, target)
        return output, current

    raise HttpError(f"failed on url {current or '(missing redirect)'}")