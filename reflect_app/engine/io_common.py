from __future__ import annotations

import csv
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence


def sniff_locale(sample: str) -> Dict[str, str]:
    """Infer delimiter and decimal separator from a text sample.

    Spectrometer exports written on machines with a European locale use a
    decimal comma and a semicolon or tab as field separator.  Decimal commas
    are recognised first so the delimiter guess can discount them.
    """

    if not sample:
        return {"decimal": ".", "delimiter": ","}

    lines = [ln for ln in sample.splitlines() if ln.strip()]
    trimmed = "\n".join(lines)

    dot_matches = re.findall(r"\d\.\d", trimmed)
    comma_matches = re.findall(r"\d,\d", trimmed)
    decimal = "," if len(comma_matches) > len(dot_matches) else "."

    delimiter = None
    try:
        dialect = csv.Sniffer().sniff(trimmed, delimiters=",;\t")
        delimiter = dialect.delimiter
    except (csv.Error, ValueError):
        pass

    if not delimiter:
        counts = {sep: trimmed.count(sep) for sep in (";", "\t", ",")}
        if decimal == ",":
            counts[","] = max(0, counts[","] - len(comma_matches))
        delimiter = max(counts, key=counts.get)
        if counts[delimiter] == 0:
            delimiter = ","

    if delimiter == "," and decimal == ",":
        delimiter = ";" if ";" in trimmed else "\t"
        if delimiter in {None, "\t"} and "\t" not in trimmed:
            delimiter = ","

    return {"decimal": decimal, "delimiter": delimiter or ","}


_FIELD_SPLIT = re.compile(r"[,;\t ]+")
_FIELD_SPLIT_DECIMAL_COMMA = re.compile(r"[;\t ]+")


def parse_numeric_row(line: str, decimal: str = ".") -> Optional[List[float]]:
    """Return the numbers on ``line`` or ``None`` if any field is not numeric.

    Rows with a single field are rejected since a spectral row always pairs a
    wavelength with at least one value.
    """

    text = line.strip()
    if not text:
        return None
    if decimal == ",":
        fields = [f.replace(",", ".") for f in _FIELD_SPLIT_DECIMAL_COMMA.split(text) if f]
    else:
        fields = [f for f in _FIELD_SPLIT.split(text) if f]
    if len(fields) < 2:
        return None
    values: List[float] = []
    for item in fields:
        try:
            values.append(float(item))
        except ValueError:
            return None
    return values


def find_files(
    where: str | os.PathLike,
    ext: str | Sequence[str],
    *,
    subdir: bool = False,
    ignore_case: bool = True,
) -> List[Path]:
    """Files in ``where`` whose suffix is one of ``ext``, sorted by path."""

    root = Path(where)
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")
    items = [ext] if isinstance(ext, str) else list(ext)
    extensions = tuple("." + str(item).strip().lstrip(".") for item in items if str(item).strip())
    if not extensions:
        raise ValueError("At least one file extension is required")
    if ignore_case:
        extensions = tuple(item.lower() for item in extensions)
    candidates = root.rglob("*") if subdir else root.glob("*")
    matched = []
    for path in candidates:
        if not path.is_file():
            continue
        suffix = path.suffix.lower() if ignore_case else path.suffix
        if suffix in extensions:
            matched.append(path)
    return sorted(matched)
