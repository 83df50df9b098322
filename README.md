# zsync

A library for rebuilding a remote file from data you already hold locally.
Blocks of the target file are found in local data with a rolling checksum.
The missing parts are then fetched over plain HTTP with Range requests.

## Modules

- `zsync.md4`: `MD4`, an incremental MD4 hasher with `update`, `digest`,
  `hexdigest` and `copy`, and `md4_digest(data)` for one-shot use.
- `zsync.checksums`: `calc_rsum_block(data)` returns the weak rolling checksum
  of a block as an `Rsum` (two 16-bit halves `a` and `b`).
  `Rsum.roll(old_byte, new_byte, blockshift)` slides that window one byte.
  `calc_checksum(data)` returns the strong (MD4) checksum.
- `zsync.ranges`: `KnownBlocks` keeps the set of blocks already obtained as
  merged inclusive ranges. It offers `add`, membership tests with `in`,
  `next_known`, `needed_ranges(start, stop)` (half-open ranges),
  `blocks_todo` and `ranges`.
- `zsync.blockhash`: `BlockHashTable` looks up target blocks (`TargetBlock`)
  by weak checksum. It has a bit table for quick negative answers
  (`might_contain`), hash chains (`chain`) and `remove`.
- `zsync.rcksum`: `RcksumState(nblocks, blocksize, rsum_bytes, checksum_bytes,
  seq_matches=1, directory=None)` holds the checksums of every target block
  and a temporary working file in `directory`.
  - `add_target_block` records the checksums of one block.
  - `submit_source_data` and `submit_source_file` scan local data and write
    every matching block into the working file. Both return how many blocks
    they found.
  - `submit_blocks` checks data that is known to be given blocks and stores
    it. It raises `RcksumError` at the first block whose checksum does not
    match; the good blocks before that one are kept.
  - `needed_block_ranges`, `blocks_todo` and `read_known_data` report what is
    known.
  - `take_filename` hands the working file over to you. Otherwise `close`,
    or leaving the `with` block, deletes it.
- `zsync.httpget`: `HttpConfig` holds a proxy (`set_proxy_from_string`
  accepts `host[:port]` or `http://host[:port]`), per-host Basic credentials
  (`add_auth`, `auth_header`) and a referer.
  `http_get(url, config=None, target_filename=None)` does an HTTP/1.0 GET,
  follows up to 5 redirects and returns `(binary file at offset 0, final URL)`.
  When given `target_filename`, it sends `If-Modified-Since` or
  `If-Unmodified-Since`/`Range` headers based on an existing copy or
  `.part` file, reuses the local copy on `304`, and keeps what it downloads
  under that name. Helpers: `split_http_url`, `parse_status_line`,
  `find_location`, `http_date_string`, `base64_encode`, `connect_to`.
  Failures raise `HttpError`.
- `zsync.rangefetch`: `RangeFetch(url, config=None)` queues inclusive byte
  ranges (`add_ranges`). It sends pipelined HTTP/1.1 requests with up to 20
  ranges each and reads both single-range `206` replies and
  `multipart/byteranges` replies. `get_range_block(size)` returns one
  `(offset, data)` piece, and `blocks(size)` yields them until done.
  `bytes_down` counts the bytes received. It follows `301`/`302` redirects;
  it refuses other `3xx` codes and any `200` reply with `HttpError`.

## Example

```python
from zsync.checksums import calc_checksum, calc_rsum_block
from zsync.rcksum import RcksumState

blocksize = 1024
target = bytes(i % 251 for i in range(4 * blocksize))   # 4 blocks
blocks = [target[i:i + blocksize] for i in range(0, len(target), blocksize)]

with RcksumState(len(blocks), blocksize, 4, 16, 1, ".") as state:
    for block_id, block in enumerate(blocks):
        state.add_target_block(block_id, calc_rsum_block(block), calc_checksum(block))

    with open("old-version.bin", "rb") as seed:
        state.submit_source_file(seed)

    print("blocks still needed:", state.blocks_todo())
    print("missing ranges:", state.needed_block_ranges(0, len(blocks)))
```

Fetching ranges from a server:

```python
from zsync.httpget import HttpConfig
from zsync.rangefetch import RangeFetch

config = HttpConfig()
with RangeFetch("http://example.com/file.bin", config) as fetch:
    fetch.add_ranges([(0, 1023), (4096, 5119)])
    for offset, data in fetch.blocks(8192):
        print(offset, len(data))
```

## What it does not do

- There is no command-line program. The package is a library only.
- It does not read `.zsync` control files. You supply the block count, block
  size and per-block checksums yourself.
- It does not tie downloaded ranges to the working file. You pass fetched
  data to `submit_blocks` yourself.
- It shows no progress display.
- It speaks plain `http://` only. It does not handle `https://` or chunked
  transfer encoding.

## Running the tests

```
pip install -e .[test]
pytest
```