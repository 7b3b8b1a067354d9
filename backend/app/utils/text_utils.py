# backend/app/utils/text_utils.py

"""
Utilidades de texto reutilizables en toda la app.

Por ahora:
- clean_text: trim, devolviendo None si queda vacía.
- like_pattern: patrón '%texto%' en minúsculas para búsquedas libres (q).
- append_line: añade una línea a un campo de auditoría (observaciones).
"""

from __future__ import annotations

from typing import Optional


def clean_text(value: Optional[str]) -> Optional[str]:
    """
    Elimina espacios al principio y final.

    - None   -> None
    - "   "  -> None
    - " a "  -> "a"
    """
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def like_pattern(q: Optional[str]) -> Optional[str]:
    """
    Convierte el texto de búsqueda en un patrón LIKE case-insensitive.

    Se usa con func.lower(col).like(pattern).
    """
    s = clean_text(q)
    if not s:
        return None
    return f"%{s.lower()}%"


def append_line(current: Optional[str], line: str) -> str:
    """
    Añade `line` al final del texto existente (separado por salto de línea).
    Los campos de auditoría nunca se sobrescriben, solo crecen.
    """
    base = (current or "").rstrip()
    return f"{base}\n{line}" if base else line
