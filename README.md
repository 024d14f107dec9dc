# henkit

Helpers for homebrew plugin loaders, in plain Python with no runtime
dependencies.

## Modules

### `henkit.ini`

An INI reader and writer that keeps comments.

- `load(filename)` returns an `IniFile`. A missing or unreadable file gives an
  empty document bound to that file name, and a warning is logged.
- `IniFile` has these methods:
  - `get(section, key)` returns the value, or `None`.
  - `set(section, key, value, comment=None)` creates the section and key when
    they are missing.
  - `add_comment(section, text)` adds a comment line. With `section=None` the
    line goes into the file header.
  - `add_section_comment(section, text)` sets the comment on a section's
    header line.
  - `delete_key(section, key)` and `delete_section(section)` raise `KeyError`
    when the section or key is missing.
  - `render()` returns the text that would be written to disk.
  - `dump(stream=None)` writes a short summary followed by the document. It
    writes to stdout unless a stream is given.
  - `save()` writes the file and clears `modified`.
- Sections and keys that are added later come first. They are kept in the
  `IniFile.sections` and `Section.keys` lists, as `Section` and `KeyValue`
  objects.
- Values are clipped to fixed maximum lengths:
  - keys and section names: 255 characters;
  - values and comments: 511 characters.

### `henkit.files`

Small file helpers.

- `get_file_size(path)`
- `read_file(path, size)` reads the file and pads the result with zero bytes
  to `size`.
- `write_file(path, data)`
- `file_exists(path)`
- `touch(path)`
- `touch_temp(name, temp_dir="/user/temp")` and
  `file_exists_temp(name, temp_dir="/user/temp")` work on marker files.
- `ends_with(text, suffix)` is a suffix test that ignores ASCII case. It
  returns the matching tail, or `None`.

### `henkit.hde64`

An x86-64 instruction length decoder.

- `disasm(code)` decodes the first instruction. It returns an `Instruction`
  that holds the prefixes, opcode, ModR/M, SIB, displacement, immediate,
  `length` and `Flag`s. Its `error` property is true when the instruction is
  invalid. Bytes past the end of `code` are read as zero.
- `instruction_size(code, min_size)` adds up whole instructions until it has
  covered at least `min_size` bytes. It raises `ValueError` if it meets an
  invalid instruction, or if the code runs out first.

### `henkit.scan`

Byte pattern tools that work on in-memory buffers.

- Pattern scanning:
  - `parse_pattern(pattern)` turns an IDA-style signature such as
    `"48 8b ?? 05"` into a list of bytes. `None` marks a wildcard.
  - `pattern_scan(data, signature, offset=0)` returns the position of the
    first match plus `offset`, or `None`. A `ff` byte in the signature also
    matches any byte.
- Other searches, each returning a position or `None`:
  - `u64_scan(data, value)` looks for a little-endian 64-bit value.
  - `mem_scan(data, value)` looks for a byte string.
  - `char_scan(data, value)` looks for a text string.
- `hex_dump(data, real=0)` returns a hex and ASCII listing as a string.
- Jump encoding:
  - `read_lea32(...)` resolves a RIP-relative displacement.
  - `jump32(src, dst, length=5, call=False)` encodes a relative jump or call.
    The result is padded with `nop` bytes up to `length`.
  - `jump64(dst)` encodes an absolute indirect jump.
  - `find_jump_area(text)` finds padding in a code segment where an absolute
    jump fits.
- `CaveBuilder(base, size)` lays out prologue trampolines in its `data`
  buffer. `add_prologue_hook(code, address, min_size)` copies the whole
  instructions that cover `min_size` bytes, adds a jump back to the function,
  and returns the trampoline's address.

### `henkit.stringid`

64-bit FNV-1a style string ids.

- `string_id64(text)` takes a `str` (as UTF-8) or bytes. Bytes with the high
  bit set count as signed characters.
- `wide_string_id64(text)` hashes one code point per unit.
- Both stop at the first NUL.

### `henkit.loader`

Plugin selection from a plugins INI file. The module also holds the standard
path constants, such as `PLUGINS_INI_PATH` (`/data/hen/plugins.ini`).

- `parse_bool(value)` is true when the value starts, in any case, with `1`,
  `enabled`, `yes`, `y`, `on` or `true`.
- `select_plugins(ini, title_id)` lists the keys (plugin paths) whose values
  are enabled. It reads sections whose name starts with `all` in any case,
  and sections whose name starts with the title id.

## Example

```python
from henkit import ini, loader

config = ini.load("plugins.ini")
config.set("all", "/data/hen/plugins/example.prx", "on")
print(loader.select_plugins(config, "CUSA00001"))
config.save()
```

## Command line

`henkit-loader` prints, one per line, the plugin paths that would be loaded
for a title:

```
henkit-loader CUSA00001 --ini plugins.ini
```

Without `--ini` it reads `/data/hen/plugins.ini`.

## What it does not do

henkit only works on files and in-memory buffers.

- It does not load or start plugins.
- It does not read or patch the memory of a running process. The jump and
  trampoline bytes it builds are returned to the caller, not written anywhere.
- It does not send system notifications.

## Tests

```
pip install -e ".[test]"
pytest
```