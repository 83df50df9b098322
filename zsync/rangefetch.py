"""Fetching byte ranges of a remote file over pipelined HTTP/1.1.

A RangeFetch queues byte ranges, sends Range requests for them (several
ranges per request, several requests per connection) and hands back the
data of each returned block together with its offset in the remote file.
Both single-range 206 replies and multipart/byteranges replies are read.
"""

from __future__ import annotations

import re
import socket
from typing import Iterable, Iterator

from .httpget import (
    HttpConfig,
    HttpError,
    USER_AGENT,
    connect_to,
    parse_status_line,
    split_http_url,
)

BUFFER_SIZE = 8192
MAX_RANGES_PER_REQUEST = 20
_REQUEST_SOFT_LIMIT = 1200
_RECV_SIZE = 4096
_LINE_LIMIT = 511

_CONTENT_RANGE = re.compile(rb"\s*bytes\s+(\d+)-(\d+)/")
_PART_CONTENT_RANGE = re.compile(rb"content-range: bytes\s*(\d+)-\s*(\d+)/")
_LINE_END = re.compile(r"[\r\n]")

# Connection states: may keep sending, last request sent, must reconnect.
_OPEN = 0
_LAST_SENT = 1
_CLOSING = 2


class RangeFetch:
    """Retrieve queued byte ranges of one URL, following redirects."""

    def __init__(self, url: str, config: HttpConfig | None = None) -> None:
        self._config = config if config is not None else HttpConfig()
        self._connect_host: str | None = None
        self._connect_port: str | None = None
        if self._config.proxy:
            self._connect_host = self._config.proxy
            self._connect_port = self._config.proxy_port or "webcache"
        self._request_target = ""
        self._host_header = ""
        self._auth: str | None = None
        self._set_url(url)

        self._sock: socket.socket | None = None
        self._buffer = bytearray()
        self._bytes_down = 0
        self._server_close = _OPEN
        self._boundary: bytes | None = None
        self._block_left = 0
        self._offset = 0

        self._ranges: list[tuple[int, int]] = []
        self._sent = 0
        self._done = 0

    # -- setup ----------------------------------------------------------

    def _set_url(self, url: str) -> None:
        host, port, path = split_http_url(url)
        self._host_header = host if port == "http" else f"{host}:{port}"
        if self._config.proxy:
            self._request_target = url
        else:
            self._connect_host, self._connect_port = host, port
            self._request_target = path
        self._auth = self._config.auth_header(host)

    @property
    def url(self) -> str:
        """The path (or, through a proxy, the full URL) being requested."""
        return self._request_target

    def add_ranges(self, ranges: Iterable[tuple[int, int]]) -> None:
        """Queue inclusive (first, last) byte ranges to fetch."""
        self._ranges = self._ranges[self._done:] + [(int(a), int(b)) for a, b in ranges]
        self._sent -= self._done
        self._done = 0

    # -- requests -------------------------------------------------------

    def build_request(self) -> bytes | None:
        """Return the next request for queued ranges, marking them sent.

        Returns None when every queued range has already been requested.
        """
        if self._sent >= len(self._ranges):
            return None
        referer = self._config.referer
        head = (
            f"GET {self._request_target} HTTP/1.1\r\n"
            f"User-Agent: {USER_AGENT}\r\n"
            f"Host: {self._host_header}"
            f"{'' if not referer else chr(13) + chr(10) + 'Referer: ' + referer}\r\n"
            f"{self._auth or ''}"
            "Range: bytes="
        )
        request = head
        allowance = MAX_RANGES_PER_REQUEST
        while self._sent < len(self._ranges):
            index = self._sent
            allowance -= 1
            last = (
                len(request) > _REQUEST_SOFT_LIMIT
                or allowance == 0
                or index == len(self._ranges) - 1
            )
            first, final = self._ranges[index]
            request += f"{first}-{final}{'' if last else ','}"
            self._sent += 1
            if last:
                break
        closing = ""
        if self._sent == len(self._ranges):
            self._server_close = _LAST_SENT
            closing = "Connection: close\r\n"
        request += f"\r\n{closing}\r\n"
        return request.encode("latin-1")

    def _connect(self) -> None:
        self._sock = connect_to(self._connect_host or "", self._connect_port or "http")
        self._server_close = _OPEN
        self._sent = self._done
        self._buffer.clear()

    def _send_more(self) -> None:
        request = self.build_request()
        if request is None or self._sock is None:
            return
        try:
            self._sock.sendall(request)
        except OSError as exc:
            raise HttpError(f"send: {exc}") from exc

    def _disconnect(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    # -- reading --------------------------------------------------------

    def _get_more_data(self) -> int:
        if self._sock is None:
            return 0
        try:
            chunk = self._sock.recv(_RECV_SIZE)
        except OSError as exc:
            raise HttpError(f"read: {exc}") from exc
        self._buffer += chunk
        self._bytes_down += len(chunk)
        return len(chunk)

    def _read_line(self) -> bytes:
        """Return the next line (with its LF), or what is left at EOF."""
        while True:
            end = self._buffer.find(b"\n")
            if end != -1:
                length = end + 1
                break
            if self._get_more_data() <= 0:
                length = len(self._buffer)
                break
        length = min(length, _LINE_LIMIT)
        line = bytes(self._buffer[:length])
        del self._buffer[:length]
        return line

    def _read_headers(self) -> int:
        """Read one set of response headers; return the status, 0 at EOF."""
        line = self._read_line()
        if not line:
            return 0
        space = line.find(b" ")
        if not line.startswith(b"HTTP/1") or space == -1:
            raise HttpError(f"got non-HTTP response {line!r}")
        status = parse_status_line(line)
        if status not in (206, 301, 302):
            if 300 <= status < 400:
                raise HttpError(
                    f"received a redirect/further action required status code: {status}; "
                    "the control file should point directly at the target file"
                )
            if status == 200:
                raise HttpError(
                    f"received a data response (code {status}) but this is not a partial "
                    "content response; this server cannot be used"
                )
            raise HttpError(f"bad status code {status}")
        if line[space - 1:space] == b"0":
            self._server_close = _CLOSING

        seen_location = False
        while True:
            line = self._read_line()
            if not line or line[:1] == b"\r":
                has_boundary = self._boundary is not None
                has_block = self._block_left > 0
                if (has_boundary != has_block) or (300 <= status < 400 and seen_location):
                    return status
                raise HttpError(f"incomplete response headers (status {status})")

            raw_name, sep, raw_value = line.partition(b": ")
            if not sep:
                raise HttpError(f"malformed response header {line!r}")
            name = raw_name.decode("latin-1").lower()
            value = _LINE_END.split(raw_value.decode("latin-1"), 1)[0]

            if name == "connection" and value == "close":
                self._server_close = _CLOSING

            if status == 206 and name == "content-range":
                match = _CONTENT_RANGE.match(value.encode("latin-1"))
                if match:
                    first, last = int(match.group(1)), int(match.group(2))
                    if first <= last:
                        self._block_left = last + 1 - first
                        self._offset = first
                self._done += 1
                self._sent = self._done

            if (
                status == 206
                and name == "content-type"
                and value[:20].lower() == "multipart/byteranges"
            ):
                marker = value.find("boundary=")
                if marker == -1:
                    raise HttpError("multipart/byteranges without a boundary")
                boundary = value[marker + 9:]
                if boundary.startswith('"'):
                    boundary = boundary[1:].split('"', 1)[0]
                else:
                    boundary = boundary.rstrip("\r\n ")
                self._boundary = boundary.encode("latin-1")

            if status in (301, 302) and name == "location":
                if seen_location:
                    raise HttpError("multiple Location headers on redirect")
                seen_location = True
                self._set_url(value)
                self._server_close = _CLOSING

    def _read_part_header(self) -> bool:
        """Read a multipart boundary and part headers; False at EOF."""
        boundary = self._boundary or b""
        self._read_line()
        line = self._read_line()
        if not line.startswith(b"--"):
            return False
        if line[2:2 + len(boundary)] != boundary:
            raise HttpError(f"got bad block boundary: {boundary!r} != {line!r}")
        if line[2 + len(boundary):3 + len(boundary)] == b"-":
            self._boundary = None
            return True
        got_range = False
        while line and line[:1] not in (b"\r", b"\n"):
            line = self._read_line().lower()
            match = _PART_CONTENT_RANGE.match(line)
            if match:
                first, last = int(match.group(1)), int(match.group(2))
                self._offset = first
                self._block_left = last - first + 1
                got_range = True
        if not got_range:
            raise HttpError("got multipart/byteranges but no Content-Range")
        self._done += 1
        return True

    def get_range_block(self, size: int = BUFFER_SIZE) -> tuple[int, bytes]:
        """Return (offset, data) for up to size bytes of the next block.

        The data is empty once every queued range has been received.
        """
        if not self._block_left:
            while True:
                if self._boundary is None:
                    new_connection = False
                    if self._sock is not None and self._server_close == _CLOSING:
                        self._disconnect()
                    if self._sock is None:
                        if self._done >= len(self._ranges):
                            return self._offset, b""
                        self._connect()
                        new_connection = True
                        self._send_more()

                    result = self._read_headers()
                    if self._server_close == _LAST_SENT:
                        self._server_close = _CLOSING
                    if new_connection and result == 0:
                        raise HttpError(f"EOF from {self._request_target}")
                    if result == 0:
                        return self._offset, b""
                    if 300 <= result < 400:
                        self._server_close = _CLOSING
                        continue
                    if self._server_close == _OPEN:
                        self._send_more()

                if self._boundary is not None:
                    if not self._read_part_header():
                        return self._offset, b""
                    if self._boundary is None:
                        continue
                break

        if not self._block_left:
            return self._offset, b""
        offset = self._offset
        out = bytearray()
        room = size
        while True:
            wanted = min(self._block_left, room)
            if len(self._buffer) < wanted:
                wanted = len(self._buffer)
                if not wanted and self._get_more_data() > 0:
                    continue
            if not wanted:
                return offset, bytes(out)
            out += self._buffer[:wanted]
            del self._buffer[:wanted]
            room -= wanted
            self._block_left -= wanted
            self._offset += wanted

    def blocks(self, size: int = BUFFER_SIZE) -> Iterator[tuple[int, bytes]]:
        """Yield (offset, data) pieces until every queued range is received."""
        while True:
            offset, data = self.get_range_block(size)
            if not data:
                return
            yield offset, data

    @property
    def bytes_down(self) -> int:
        """Total bytes received from the network so far."""
        return self._bytes_down

    def close(self) -> None:
        """Close any open connection."""
        self._disconnect()

    def __enter__(self) -> "RangeFetch":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()