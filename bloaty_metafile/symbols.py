"""
Symbol -> attribution path resolution.

Handles the two forms Rust symbols show up in bloaty output:

  - already demangled:  crate_a::foo::bar::h0123456789abcdef
  - legacy mangled:     _ZN7crate_a3foo3bar17h0123456789abcdefE

plus the `$LT$`/`..` escapes used by legacy mangling, and trait impls
(`<Type as Trait>::method`). Everything here is a pure function so another
mangling scheme can be swapped in without touching the aggregator.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

# Reserved top-level buckets
SECTIONS_NAME = "[sections]"
FOREIGN_NAME = "[foreign]"
UNKNOWN_NAME = "[unknown]"

AttributionPath = Tuple[str, ...]

_HASH_RE = re.compile(r"^h[0-9a-f]{16}$")
_LLVM_SUFFIX_RE = re.compile(r"\.llvm\.\d+$")
_ESCAPE_RE = re.compile(r"\$(LT|GT|RF|BP|C|SP|LP|RP|u[0-9a-fA-F]{2,})\$")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ESCAPES = {
    "LT": "<",
    "GT": ">",
    "RF": "&",
    "BP": "*",
    "C": ",",
    "SP": "@",
    "LP": "(",
    "RP": ")",
}


# ---------------------------
# Escapes & legacy mangling
# ---------------------------

def _decode_escape(match: re.Match) -> str:
    code = match.group(1)
    if code in _ESCAPES:
        return _ESCAPES[code]
    value = int(code[1:], 16)
    return chr(value) if 0x20 <= value <= 0x7E else match.group(0)


def unescape(text: str) -> str:
    """Decode `$LT$`-style escapes and `..` path separators."""
    if not _ESCAPE_RE.search(text):
        return text
    if text.startswith("_$"):
        text = text[1:]
    text = _ESCAPE_RE.sub(_decode_escape, text)
    return text.replace("..", "::")


def _legacy_idents(symbol: str) -> Optional[List[str]]:
    """Split `_ZN<len><ident>...E` into raw identifiers, or None."""
    for prefix in ("__ZN", "_ZN", "ZN"):
        if symbol.startswith(prefix):
            body = symbol[len(prefix):]
            break
    else:
        return None

    idents: List[str] = []
    i = 0
    while i < len(body) and body[i] != "E":
        j = i
        while j < len(body) and body[j].isdigit():
            j += 1
        if j == i:
            return None
        n = int(body[i:j])
        ident = body[j:j + n]
        if len(ident) != n:
            return None
        idents.append(ident)
        i = j + n
    if i >= len(body) or not idents:
        return None
    return idents


# ---------------------------
# Path splitting
# ---------------------------

def split_path(text: str) -> List[str]:
    """Split on `::` outside of angle brackets.

    `core::ptr::drop_in_place<a::B>` -> ['core', 'ptr', 'drop_in_place<a::B>']
    """
    parts: List[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "<":
            depth += 1
        elif ch == ">" and depth > 0:
            # `->` inside fn pointer types is not a closing bracket
            if i == 0 or text[i - 1] != "-":
                depth -= 1
        elif ch == ":" and depth == 0 and text.startswith("::", i):
            parts.append(text[start:i])
            i += 2
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return [p for p in parts if p]


def _split_as(inner: str) -> Tuple[str, Optional[str]]:
    """Split `Type as Trait` at bracket depth 0."""
    depth = 0
    for i, ch in enumerate(inner):
        if ch == "<":
            depth += 1
        elif ch == ">" and depth > 0:
            depth -= 1
        elif depth == 0 and inner.startswith(" as ", i):
            return inner[:i], inner[i + 4:]
    return inner, None


def _impl_owner(segment: str) -> List[str]:
    """Pick the owning path of `<Type as Trait>` / `<Type>`."""
    inner = segment[1:-1]
    type_part, trait_part = _split_as(inner)
    type_path = split_path(type_part.lstrip("&*").replace("mut ", "").replace("const ", "").replace("dyn ", ""))
    if trait_part is None or len(type_path) > 1:
        return type_path
    # blanket impls like <&T as Trait> belong to the trait's crate
    return split_path(trait_part)


def demangle(symbol: str) -> Optional[List[str]]:
    """Return ordered components (crate, module..., item) or None.

    None means the symbol does not follow the Rust path convention (plain C
    symbols, C++ oddities, ...).
    """
    sym = _LLVM_SUFFIX_RE.sub("", symbol.strip())
    if not sym:
        return None

    idents = _legacy_idents(sym)
    if idents is not None:
        text = "::".join(unescape(i) for i in idents)
    else:
        text = unescape(sym)

    parts = split_path(text)
    if parts and _HASH_RE.match(parts[-1]):
        parts = parts[:-1]
    if not parts:
        return None

    head = parts[0]
    if head.startswith("<") and head.endswith(">"):
        parts = _impl_owner(head) + parts[1:]

    if len(parts) < 2 or not _IDENT_RE.match(parts[0]):
        return None
    return parts


def resolve(section: str, symbol: str, with_section: bool = False) -> AttributionPath:
    """Map one (section, symbol) pair to its attribution path.

    - no symbol            -> ([sections], section)
    - bloaty pseudo symbol -> ([sections], section, [1848 Others])
    - not demangleable     -> ([foreign], symbol)
    - otherwise            -> (crate, module..., item), with the section
                              inserted after the crate if with_section
    """
    section = section.strip()
    symbol = symbol.strip()
    if not symbol:
        return (SECTIONS_NAME, section or UNKNOWN_NAME)
    if symbol.startswith("[") and symbol.endswith("]"):
        return (SECTIONS_NAME, section or UNKNOWN_NAME, symbol)

    parts = demangle(symbol)
    if parts is None:
        return (FOREIGN_NAME, symbol)
    if with_section and section:
        return (parts[0], section, *parts[1:])
    return tuple(parts)
