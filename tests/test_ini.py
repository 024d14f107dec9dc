import io

import pytest

from henkit.ini import MAX_VALUE_LENGTH, IniFile, load


def _write(tmp_path, text, name="test.ini"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_missing_file_gives_empty_document(tmp_path):
    path = tmp_path / "absent.ini"
    ini = load(path)
    assert ini.sections == []
    assert ini.header_comments == []
    assert ini.modified is False
    assert ini.filename == str(path)


def test_set_and_get():
    ini = IniFile("x.ini")
    ini.set("sec", "key", "value")
    assert ini.get("sec", "key") == "value"
    assert ini.modified is True


def test_get_missing_returns_none():
    ini = IniFile("x.ini")
    ini.set("sec", "key", "value")
    assert ini.get("sec", "other") is None
    assert ini.get("nosec", "key") is None


def test_set_overwrites_existing_value():
    ini = IniFile("x.ini")
    ini.set("sec", "key", "one")
    ini.set("sec", "key", "two")
    assert ini.get("sec", "key") == "two"
    assert len(ini.sections[0].keys) == 1


def test_new_sections_and_keys_are_prepended():
    ini = IniFile("x.ini")
    ini.set("a", "k1", "1")
    ini.set("b", "k1", "1")
    ini.set("a", "k2", "2")
    assert [s.name for s in ini.sections] == ["b", "a"]
    assert [kv.key for kv in ini.sections[1].keys] == ["k2", "k1"]


def test_value_is_truncated():
    ini = IniFile("x.ini")
    ini.set("s", "k", "v" * 1000)
    assert len(ini.get("s", "k")) == MAX_VALUE_LENGTH - 1


def test_render_key_with_comment():
    ini = IniFile("x.ini")
    ini.set("s", "k", "v", "c")
    assert ini.render() == "[s]\nk = v ; c\n\n"


def test_save_and_reload_round_trip(tmp_path):
    path = tmp_path / "round.ini"
    ini = IniFile(str(path))
    ini.set("first", "alpha", "1", "note")
    ini.set("second", "beta", "two words")
    ini.add_section_comment("first", "heading")
    ini.save()
    assert ini.modified is False

    again = load(path)
    assert again.get("first", "alpha") == "1"
    assert again.get("second", "beta") == "two words"
    assert again._find_section("first").comment == "heading"
    assert again._find_section("first").keys[0].comment == "note"


def test_load_parses_inline_comments(tmp_path):
    path = _write(tmp_path, "[sec] ; about sec\nkey = val ; about key\n")
    ini = load(path)
    section = ini.sections[0]
    assert section.name == "sec"
    assert section.comment == "about sec"
    assert section.keys[0].value == "val"
    assert section.keys[0].comment == "about key"


def test_hash_comment_used_when_no_semicolon(tmp_path):
    path = _write(tmp_path, "[sec]\nkey = val # hashed\n")
    kv = load(path).sections[0].keys[0]
    assert kv.value == "val"
    assert kv.comment == "hashed"


def test_quoted_semicolon_is_kept_in_value(tmp_path):
    path = _write(tmp_path, '[sec]\nkey = "a;b"\n')
    ini = load(path)
    assert ini.get("sec", "key") == '"a;b"'
    assert ini.sections[0].keys[0].comment == ""


def test_comments_before_key_are_attached(tmp_path):
    path = _write(tmp_path, "[s]\n; note\n\nk = v\n")
    kv = load(path).sections[0].keys[0]
    assert kv.comments_before == ["note", ""]


def test_comments_before_section_are_dropped(tmp_path):
    path = _write(tmp_path, "; top\n[s]\nk = v\n; between\n[t]\nx = y\n")
    ini = load(path)
    assert ini.header_comments == []
    assert all(s.comments_before == [] for s in ini.sections)


def test_header_comments_kept_without_sections(tmp_path):
    path = _write(tmp_path, "; top\n\n# other\n")
    ini = load(path)
    assert ini.header_comments == ["top", "", "other"]


def test_trailing_comments_stay_with_last_section(tmp_path):
    path = _write(tmp_path, "[s]\nk = v\n; tail\n")
    ini = load(path)
    assert ini.sections[0].comments_before == ["tail"]
    rendered = ini.render()
    assert rendered.index("; tail") < rendered.index("[s]")


def test_keys_before_any_section_are_ignored(tmp_path):
    path = _write(tmp_path, "orphan = 1\n[s]\nk = v\n")
    ini = load(path)
    assert len(ini.sections) == 1
    assert [kv.key for kv in ini.sections[0].keys] == ["k"]


def test_duplicate_keys_keep_later_first(tmp_path):
    path = _write(tmp_path, "[s]\nk = 1\nk = 2\n")
    ini = load(path)
    assert ini.get("s", "k") == "2"
    assert [kv.value for kv in ini.sections[0].keys] == ["2", "1"]


def test_crlf_line_endings(tmp_path):
    path = tmp_path / "crlf.ini"
    path.write_bytes(b"[s]\r\nk = v\r\n")
    assert load(path).get("s", "k") == "v"


def test_add_header_comment_renders_first():
    ini = IniFile("x.ini")
    ini.set("s", "k", "v")
    ini.add_comment(None, "hello")
    assert ini.render().startswith("; hello\n")
    assert ini.header_comments == ["hello"]


def test_add_comment_to_section():
    ini = IniFile("x.ini")
    ini.set("s", "k", "v")
    ini.modified = False
    ini.add_comment("s", "above")
    assert ini.sections[0].comments_before == ["above"]
    assert ini.modified is True


def test_add_comment_missing_section_raises():
    ini = IniFile("x.ini")
    with pytest.raises(KeyError):
        ini.add_comment("nope", "text")


def test_add_section_comment_missing_section_raises():
    ini = IniFile("x.ini")
    with pytest.raises(KeyError):
        ini.add_section_comment("nope", "text")


def test_delete_key():
    ini = IniFile("x.ini")
    ini.set("s", "a", "1")
    ini.set("s", "b", "2")
    ini.delete_key("s", "a")
    assert ini.get("s", "a") is None
    assert ini.get("s", "b") == "2"


def test_delete_key_missing_raises():
    ini = IniFile("x.ini")
    ini.set("s", "a", "1")
    with pytest.raises(KeyError):
        ini.delete_key("s", "zzz")
    with pytest.raises(KeyError):
        ini.delete_key("missing", "a")


def test_delete_section():
    ini = IniFile("x.ini")
    ini.set("s", "a", "1")
    ini.set("t", "a", "1")
    ini.delete_section("s")
    assert [s.name for s in ini.sections] == ["t"]
    with pytest.raises(KeyError):
        ini.delete_section("s")


def test_dump_writes_summary_and_body():
    ini = IniFile("dump.ini")
    ini.set("s", "k", "v")
    buffer = io.StringIO()
    ini.dump(buffer)
    text = buffer.getvalue()
    assert text.startswith("INI File: dump.ini\n")
    assert "Modified: Yes\n\n" in text
    assert text.endswith(ini.render())