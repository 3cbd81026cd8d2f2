from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class ColumnStreams:
    """
    Buffers paralelos por "columna" (fechas, descripciones, montos...).

    Algunos layouts de PDF-a-texto no ponen el monto al lado de su transacción:
    primero vienen todas las fechas/descripciones y después un bloque de montos.
    Se acumula cada columna por separado y se re-ensambla por posición.
    """

    def __init__(self, *names: str, log: Optional[logging.Logger] = None) -> None:
        if not names:
            raise ValueError("ColumnStreams necesita al menos una columna")
        self._names = list(names)
        self._streams: Dict[str, List[Any]] = {n: [] for n in names}
        self._log = log or logger

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def push(self, name: str, value: Any) -> None:
        self._streams[name].append(value)

    def extend(self, name: str, values: List[Any]) -> None:
        self._streams[name].extend(values)

    def get(self, name: str) -> List[Any]:
        return self._streams[name]

    def replace(self, name: str, values: List[Any]) -> None:
        self._streams[name] = list(values)

    def lengths(self) -> Dict[str, int]:
        return {n: len(v) for n, v in self._streams.items()}

    def has_all(self) -> bool:
        return all(self._streams[n] for n in self._names)

    def clear(self) -> None:
        for n in self._names:
            self._streams[n] = []

    def zip_rows(self) -> List[Dict[str, Any]]:
        """
        Empareja por índice hasta la columna más corta.
        Si los largos no coinciden se registra un warning (lo que sobra se descarta).
        """
        lengths = self.lengths()
        count = min(lengths.values())
        if len(set(lengths.values())) > 1:
            self._log.warning(
                "Columnas desbalanceadas, se usan %d filas: %s",
                count,
                lengths,
                extra={"event": "column_streams_mismatch", "lengths": lengths},
            )
        return [{n: self._streams[n][i] for n in self._names} for i in range(count)]


def merge_continuations(
    lines: List[str],
    slots: int,
    starts_new: Callable[[str], bool],
    max_merge: int = 2,
    max_length: int = 50,
) -> List[str]:
    """
    Agrupa líneas de descripción en `slots` descripciones (greedy):
    - cada grupo empieza con la línea siguiente disponible
    - se le agregan continuaciones mientras la siguiente línea no empiece
      una transacción nueva (starts_new), sea corta (< max_length)
      y no se hayan agregado ya max_merge líneas
    - nunca se consume una línea que haga falta para los slots restantes
    """
    groups: List[str] = []
    idx = 0

    while len(groups) < slots and idx < len(lines):
        parts = [lines[idx]]
        idx += 1
        remaining_slots = slots - len(groups) - 1

        while (
            idx < len(lines)
            and len(parts) - 1 < max_merge
            and len(lines) - idx > remaining_slots
            and not starts_new(lines[idx])
            and len(lines[idx]) < max_length
        ):
            parts.append(lines[idx])
            idx += 1

        groups.append(" ".join(parts))

    return groups
