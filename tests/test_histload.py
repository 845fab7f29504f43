"""Tests for histload -- decoding, splitting and normalizing history files."""

from __future__ import annotations

from pathlib import Path

import pytest

from histload import (
    HistoryDecodeError,
    HistoryFileError,
    ShellKind,
    UnsupportedShellError,
    build_corpus,
    dedupe,
    history_path,
    load_corpus,
    read_history_bytes,
    split_entries,
    strip_timestamps,
    unmetafy,
)


def zsh_line(epoch: int, command: str) -> str:
    return f": {epoch}:0;{command}\n"


# -- Decoder -----------------------------------------------------------------


class TestUnmetafy:
    def test_meta_marker_is_removed_and_next_byte_xored(self):
        data = bytes([ord("a"), ord("b"), ord("c"), 0x83, 0x10, ord("e"), ord("f")])
        assert unmetafy(data) == bytes([ord("a"), ord("b"), ord("c"), 0x10 ^ 32, ord("e"), ord("f")])

    def test_output_shrinks_by_one_byte_per_marker(self):
        data = b"x\x83\xa5y\x83\xa5z"
        assert len(unmetafy(data)) == len(data) - 2

    def test_plain_bytes_pass_through(self):
        assert unmetafy(b"git status") == b"git status"

    def test_trailing_marker_is_a_decode_error(self):
        with pytest.raises(HistoryDecodeError):
            unmetafy(b"abc\x83")


# -- ShellKind ---------------------------------------------------------------


class TestShellKind:
    @pytest.mark.parametrize("name, kind", [("bash", ShellKind.BASH), ("zsh", ShellKind.ZSH), (" ZSH ", ShellKind.ZSH)])
    def test_parse_accepts_supported_shells(self, name, kind):
        assert ShellKind.parse(name) is kind

    @pytest.mark.parametrize("name", [None, "", "fish"])
    def test_parse_rejects_everything_else(self, name):
        with pytest.raises(UnsupportedShellError) as excinfo:
            ShellKind.parse(name)
        assert "'bash'" in str(excinfo.value)
        assert "'zsh'" in str(excinfo.value)


# -- Bash --------------------------------------------------------------------


class TestBashCorpus:
    def test_newest_first(self):
        assert build_corpus(b"ls\npwd\nwhoami\n", ShellKind.BASH) == ["whoami", "pwd", "ls"]

    def test_repeated_command_keeps_its_earliest_position(self):
        assert build_corpus(b"cmd1\ncmd2\ncmd1\n", ShellKind.BASH) == ["cmd2", "cmd1"]

    def test_empty_lines_are_dropped(self):
        assert build_corpus(b"ls\n\n\npwd\n", ShellKind.BASH) == ["pwd", "ls"]

    def test_no_timestamp_stripping(self):
        data = b": 1700000000:0;ls\n"
        assert build_corpus(data, ShellKind.BASH) == [": 1700000000:0;ls"]

    def test_empty_file(self):
        assert build_corpus(b"", ShellKind.BASH) == []

    def test_invalid_utf8_is_fatal(self):
        with pytest.raises(HistoryDecodeError):
            build_corpus(b"ls\n\xff\xfe\n", ShellKind.BASH)


# -- Zsh ---------------------------------------------------------------------


class TestZshCorpus:
    def test_timestamps_are_stripped(self):
        data = (zsh_line(1700000000, "ls -la") + zsh_line(1700000001, "git status")).encode()
        assert build_corpus(data, ShellKind.ZSH) == ["git status", "ls -la"]

    def test_multiline_command_is_one_entry(self):
        data = (
            zsh_line(1700000000, "for f in *; do\n  echo $f\ndone")
            + zsh_line(1700000001, "pwd")
        ).encode()
        assert build_corpus(data, ShellKind.ZSH) == ["pwd", "for f in *; do\n  echo $f\ndone"]

    def test_duplicates_collapse(self):
        data = (
            zsh_line(1700000000, "make")
            + zsh_line(1700000001, "make test")
            + zsh_line(1700000002, "make")
        ).encode()
        assert build_corpus(data, ShellKind.ZSH) == ["make test", "make"]

    def test_metafied_bytes_are_restored(self):
        # "ą" is C4 85 in UTF-8; zsh stores the 0x85 as 0x83 0xA5.
        data = b": 1700000000:0;echo \xc4\x83\xa5\n"
        assert build_corpus(data, ShellKind.ZSH) == ["echo ą"]

    def test_empty_file(self):
        assert build_corpus(b"", ShellKind.ZSH) == []

    def test_empty_command_is_dropped(self):
        data = (zsh_line(1700000000, "") + zsh_line(1700000001, "ls")).encode()
        assert build_corpus(data, ShellKind.ZSH) == ["ls"]

    def test_split_drops_one_final_line_terminator(self):
        text = ": 1700000000:0;ls\n: 1700000001:0;pwd\n"
        assert split_entries(text, ShellKind.ZSH) == [": 1700000000:0;ls", "1700000001:0;pwd"]
        assert split_entries("ls\n\n", ShellKind.BASH) == ["ls", ""]

    def test_strip_timestamps_handles_first_and_later_entries(self):
        entries = [": 1700000000:0;first", "1700000001:0;second"]
        assert strip_timestamps(entries, ShellKind.ZSH) == ["first", "second"]

    def test_invalid_utf8_after_unescape_is_fatal(self):
        with pytest.raises(HistoryDecodeError):
            build_corpus(b": 1700000000:0;\x83\xdf\n", ShellKind.ZSH)


# -- Properties --------------------------------------------------------------


class TestNormalizationProperties:
    def test_dedupe_is_idempotent(self):
        entries = ["a", "b", "a", "c", "b"]
        assert dedupe(dedupe(entries)) == dedupe(entries)

    def test_build_is_deterministic(self):
        data = (zsh_line(1700000000, "a") + zsh_line(1700000001, "b") + zsh_line(1700000002, "a")).encode()
        assert build_corpus(data, ShellKind.ZSH) == build_corpus(data, ShellKind.ZSH)

    def test_corpus_has_no_duplicates_or_empties(self):
        corpus = build_corpus(b"a\n\nb\na\n\nc\nb\n", ShellKind.BASH)
        assert "" not in corpus
        assert len(corpus) == len(set(corpus))


# -- File I/O ----------------------------------------------------------------


class TestFiles:
    def test_history_path_uses_shell_filename(self, tmp_path: Path):
        assert history_path(ShellKind.BASH, home=tmp_path) == tmp_path / ".bash_history"
        assert history_path(ShellKind.ZSH, home=tmp_path) == tmp_path / ".zsh_history"

    def test_history_path_defaults_to_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert history_path(ShellKind.ZSH) == tmp_path / ".zsh_history"

    def test_unresolvable_home_is_a_file_error(self, monkeypatch: pytest.MonkeyPatch):
        def no_home(cls):
            raise RuntimeError("Could not determine home directory.")

        monkeypatch.setattr(Path, "home", classmethod(no_home))
        with pytest.raises(HistoryFileError):
            history_path(ShellKind.BASH)

    def test_missing_file_is_a_file_error(self, tmp_path: Path):
        with pytest.raises(HistoryFileError) as excinfo:
            read_history_bytes(tmp_path / ".bash_history")
        assert ".bash_history" in str(excinfo.value)

    def test_load_corpus_reads_given_path(self, tmp_path: Path):
        path = tmp_path / "hist"
        path.write_bytes(zsh_line(1700000000, "echo hi").encode())
        assert load_corpus(ShellKind.ZSH, path) == ["echo hi"]

    def test_load_corpus_defaults_to_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        (tmp_path / ".bash_history").write_bytes(b"ls\npwd\n")
        assert load_corpus(ShellKind.BASH) == ["pwd", "ls"]
