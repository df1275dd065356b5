# vmpeek

A library for looking inside a virtual machine from the outside:

- **Disk watching** (`vmpeek.ext2dir`, `vmpeek.ext2`, `vmpeek.blockhash`,
  `vmpeek.diskwatch`): parse ext2 directory blocks from a raw disk image,
  register directories to watch, and turn a stream of block-write records
  into `MKDIR`, `RMDIR`, `MKFILE` and `RMFILE` events.
- **Memory snapshots** (`vmpeek.memory`, `vmpeek.pagetable`,
  `vmpeek.kernelpd`): open a raw physical-memory file, walk 32-bit x86 page
  tables (with or without PAE), translate kernel virtual addresses and search
  the snapshot for the kernel page directory.
- **Utilities** (`vmpeek.symbols`, `vmpeek.errors`): a `System.map`-style
  symbol row reader and error-mode reporting.

## Installation

```
pip install .
```

Python 3.10 or newer is required; there are no third-party dependencies.

## Watching a directory on a disk image

```python
import sys
from vmpeek.diskwatch import DiskWatcher

with DiskWatcher("guest.img") as watcher:
    watched = watcher.set_watch("/home/user")
    watcher.activate("/dev/xen/tapfifo0", sys.stdout)
    watcher.join()
    watcher.unset_watch(watched)
```

`set_watch` raises `FileNotFoundError` if the directory is not on the image.
`activate` reads the log in a background thread and writes one line per
change, such as `MKFILE: /home/user/notes.txt`; `join` waits for the log to
end and re-raises any error the thread met. `DiskWatcher.run(stream, out)`
does the same work synchronously on any binary stream and returns the number
of changes reported, and `handle_op` returns the report lines for a single
`BlockOp`.

Each log record is 5009 bytes: an operation byte, a little-endian 64-bit
sector number, a 32-bit sector count and a 4096-byte block.
`vmpeek.diskwatch.encode_op` builds such records and `parse_op` reads them.

Directory blocks can be handled directly:

```python
from vmpeek.ext2dir import parse_block_dir, sort_dir, compare_dirs

old = sort_dir(parse_block_dir(old_block, 4096))
new = sort_dir(parse_block_dir(new_block, 4096))
for change in compare_dirs(old, new):
    print(change.op.name, change.name)
```

`vmpeek.ext2` reads the superblock (`read_superblock`), the inode table of
each block group (`read_group_descriptors`), walks a path from the root
(`locate_directory`) and describes a directory block (`format_dir_listing`).

## Reading a memory snapshot

```python
from vmpeek.memory import MemoryImage, OSType
from vmpeek.kernelpd import find_kernel_pd

with MemoryImage.from_file("guest.mem", os_type=OSType.LINUX,
                           page_offset=0xC0000000) as image:
    print(hex(find_kernel_pd(image)))
```

`find_kernel_pd` raises `LookupError` when no page passes its filters; it
handles non-PAE page directories only.

Once the kernel page directory is known, pass it as `kpgd` when opening the
image and use `vmpeek.pagetable.translate_kv2p` (returns 0 for an unmapped
address) or `read_u32_kernel_va` / `read_u64_kernel_va` (raise
`LookupError` for an unmapped address) to read kernel memory. Physical and
machine addresses are read with `MemoryImage.read_u32_phys`,
`read_u64_phys`, `read_u32_mach` and `read_u64_mach`.

## Symbol files and errors

`vmpeek.symbols.get_symbol_row(f, symbol, position)` reads rows from a text
file until the whitespace-separated field at `position` equals `symbol`, and
returns that row, or `None`.

`vmpeek.errors.report_error(mode, error, error_type)` raises `XAError` when
the error mode (`ErrorMode.FAILHARD`, or a `ErrorType.CRITICAL` error under
`ErrorMode.FAILSOFT`) does not allow the error to be ignored, and otherwise
returns it.

## What is not included

There is no command-line program: disk watching and memory inspection are
used from Python as shown above. There is no hex-dump helper. Memory access
works only on saved memory images, not on running guests.

## Running the tests

```
pip install .[test]
pytest
```