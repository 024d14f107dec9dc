"""Plugin loader helpers: comment-preserving INI files, file utilities, x86-64 length decoding, pattern scanning, string ids and plugin selection."""

__version__ = "0.1.0"

__all__ = ["ini", "files", "hde64", "scan", "stringid", "loader"]