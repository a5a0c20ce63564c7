"""Execute the Python examples embedded in Markdown walkthroughs.

Blocks of one document share a namespace and run in order, so later
examples may use names defined earlier.  The document's folder is the
working directory while its blocks run.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

__all__ = ["CodeBlock", "BlockResult", "extract_code_blocks", "check_document", "check_directory"]

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^(?P<indent>\s*)(?P<fence>`{3,}|~{3,})\s*(?P<info>[^\n`]*)$")
_PYTHON_TAGS = {"python", "py", "python3", "{python}"}


@dataclass(frozen=True)
class CodeBlock:
    source: str
    line: int


@dataclass(frozen=True)
class BlockResult:
    path: str
    line: int
    ok: bool
    error: Optional[str] = None


def extract_code_blocks(text: str) -> List[CodeBlock]:
    """Fenced ``python`` blocks in document order.

    ``line`` is the 1-based line of the first code line.  Blocks tagged
    ``python skip`` are left out.
    """

    blocks: List[CodeBlock] = []
    lines = text.splitlines()
    idx = 0
    while idx < len(lines):
        match = _FENCE.match(lines[idx])
        if not match:
            idx += 1
            continue
        fence = match.group("fence")
        info = match.group("info").strip().lower().split()
        body: List[str] = []
        start = idx + 1
        idx += 1
        while idx < len(lines) and not lines[idx].strip().startswith(fence):
            body.append(lines[idx])
            idx += 1
        idx += 1
        if info and info[0] in _PYTHON_TAGS and "skip" not in info[1:]:
            blocks.append(CodeBlock(source="\n".join(body) + "\n", line=start + 1))
    return blocks


@contextlib.contextmanager
def _working_directory(path: Path) -> Iterator[None]:
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield
    finally:
        os.chdir(previous)


def check_document(path: str | os.PathLike) -> List[BlockResult]:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    namespace: Dict[str, object] = {"__name__": "__docs__"}
    results: List[BlockResult] = []
    with _working_directory(path.parent.resolve()):
        for block in extract_code_blocks(text):
            try:
                code = compile(block.source, f"{path.name}:{block.line}", "exec")
                exec(code, namespace)
            except Exception as exc:  # every failure is reported, not raised
                logger.error("%s:%d failed: %s", path, block.line, exc)
                detail = "".join(traceback.format_exception_only(type(exc), exc)).strip()
                results.append(BlockResult(path=str(path), line=block.line, ok=False, error=detail))
            else:
                results.append(BlockResult(path=str(path), line=block.line, ok=True))
    return results


def check_directory(root: str | os.PathLike, pattern: str = "*.md") -> List[BlockResult]:
    results: List[BlockResult] = []
    for doc in sorted(Path(root).glob(pattern)):
        logger.info("Checking %s", doc)
        results.extend(check_document(doc))
    return results
