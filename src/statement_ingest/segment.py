from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass
class TableSection:
    context_lines: List[str]        # líneas previas para inferir tipo de cuenta
    header_line: Optional[str]
    lines: List[str]                # líneas dentro de la tabla (sin header)


def _find_section_block(
    lines: List[str],
    begin: int,
    title: str,
    header_prefix: str,
    end_prefixes: Sequence[str],
) -> Optional[Tuple[int, int, int, Optional[str]]]:
    """
    Encuentra el siguiente bloque `title` a partir de `begin`:
    - inicio: después del header de columnas (línea que comienza con header_prefix)
    - fin: antes de una línea que empiece con alguno de end_prefixes
    Devuelve (índice del título, inicio, fin, header).
    """
    title_idx = None
    for i in range(begin, len(lines)):
        if lines[i] == title:
            title_idx = i
            break
    if title_idx is None:
        return None

    start = None
    header = None
    for i in range(title_idx + 1, len(lines)):
        if lines[i].startswith(header_prefix):
            header = lines[i]
            start = i + 1
            break

    if start is None:
        return None

    end = len(lines)
    for i in range(start, len(lines)):
        if lines[i].startswith(tuple(end_prefixes)):
            end = i
            break

    return title_idx, start, end, header


def find_table_sections(
    lines: List[str],
    title: str = "Transaction history",
    header_prefix: str = "Date",
    end_prefixes: Sequence[str] = ("Totals", "Ending balance on"),
    context_size: int = 40,
) -> List[TableSection]:
    """
    Todas las tablas `title` del documento (puede haber una por cuenta,
    y una misma tabla puede continuar en la página siguiente con otro título).
    """
    sections: List[TableSection] = []
    pos = 0
    while pos < len(lines):
        found = _find_section_block(lines, pos, title, header_prefix, end_prefixes)
        if not found:
            break

        title_idx, start, end, header = found
        context_start = max(0, title_idx - context_size)
        sections.append(
            TableSection(
                context_lines=lines[context_start:title_idx],
                header_line=header,
                lines=lines[start:end],
            )
        )
        pos = max(end, start)
    return sections


def isolate_section(
    text: str,
    start: "re.Pattern[str]",
    stop: "re.Pattern[str]",
) -> Optional[str]:
    """
    Sub-texto desde el label `start` hasta el siguiente límite `stop`
    (o el final del documento). Sirve para buscar solo dentro de, p.ej.,
    el 'Account Summary' y no confundir montos de otras partes.
    """
    m = start.search(text)
    if not m:
        return None
    rest = text[m.end():]
    s = stop.search(rest)
    return rest[: s.start()] if s else rest
