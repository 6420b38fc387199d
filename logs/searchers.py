"""Text-search backends: one per external grep-like tool.

Each searcher states which file suffixes it handles and probes PATH for its
tool, so LogSearch picks a backend by capability rather than by name and
tests can substitute fakes.
"""
import shutil
from typing import Protocol, runtime_checkable
from logs.discovery import COMPRESSED_SUFFIXES


@runtime_checkable
class TextSearcher(Protocol):
    tool: str
    suffixes: tuple

    def available(self) -> bool: ...

    def handles(self, path: str) -> bool: ...

    def build_command(self, pattern: str, files: list, max_count: int) -> list: ...


class GrepSearcher:
    """Plain-text search with grep. Handles anything no compressed searcher claims."""

    tool = "grep"
    suffixes = ()

    def __init__(self, executable=None):
        self.executable = executable or self.tool

    def available(self):
        return shutil.which(self.executable) is not None

    def handles(self, path):
        lower = path.lower()
        if not self.suffixes:
            return not lower.endswith(COMPRESSED_SUFFIXES)
        return lower.endswith(self.suffixes)

    def build_command(self, pattern, files, max_count):
        # -H: always print filename, --text: never stop at "binary file matches"
        args = [self.executable, "-i", "-H", "--text", "-m", str(max_count)]
        if pattern:
            args += ["-E", "-e", pattern]
        else:
            args += ["-e", "."]
        args.append("--")
        return args + list(files)


class ZgrepSearcher(GrepSearcher):
    tool = "zgrep"
    suffixes = (".gz", ".z")


class BzgrepSearcher(GrepSearcher):
    tool = "bzgrep"
    suffixes = (".bz2",)


class XzgrepSearcher(GrepSearcher):
    tool = "xzgrep"
    suffixes = (".xz", ".lzma")


class Lz4grepSearcher(GrepSearcher):
    tool = "lz4grep"
    suffixes = (".lz4",)



def default_searchers():
    """Compressed-aware searchers first, plain grep last."""
    return [ZgrepSearcher(), BzgrepSearcher(), XzgrepSearcher(), Lz4grepSearcher(), GrepSearcher()]
