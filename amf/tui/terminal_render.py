"""Render a ``tmux capture-pane -e`` snapshot into styled runs.

Each call builds a fresh ``pyte.Screen`` sized to the panel and feeds it the
captured bytes, so rendering carries no state between frames. The result is
one list of ``StyledRun`` per screen row, exactly ``rows`` long.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

import pyte
from rich.style import Style
from rich.text import Text

_HEX_RE = re.compile(r"^[0-9a-fA-F]{6}$")

# pyte names SGR 33 "brown"; the bright variants are "bright" + base name.
_COLOR_ALIASES = {"brown": "yellow"}


def _color(name: str) -> str | None:
    """Map a pyte colour to a rich colour name (None for the terminal default)."""
    if not name or name == "default":
        return None
    if _HEX_RE.match(name):
        return f"#{name.lower()}"
    if name.startswith("bright"):
        base = name[len("bright"):]
        return f"bright_{_COLOR_ALIASES.get(base, base)}"
    return _COLOR_ALIASES.get(name, name)


@dataclass(frozen=True)
class CellStyle:
    fg: str | None = None
    bg: str | None = None
    bold: bool = False
    italic: bool = False
    underline: bool = False
    inverse: bool = False

    def to_rich(self) -> Style:
        return Style(
            color=self.fg,
            bgcolor=self.bg,
            bold=self.bold,
            italic=self.italic,
            underline=self.underline,
            reverse=self.inverse,
        )


DEFAULT_STYLE = CellStyle()


@dataclass(frozen=True)
class StyledRun:
    text: str
    style: CellStyle = DEFAULT_STYLE


def _cell_style(char: pyte.screens.Char) -> CellStyle:
    return CellStyle(
        fg=_color(char.fg),
        bg=_color(char.bg),
        bold=bool(char.bold),
        italic=bool(char.italics),
        underline=bool(char.underscore),
        inverse=bool(char.reverse),
    )


def _normalize(raw: bytes | str) -> str:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    # capture-pane ends every line with \n; the last one would scroll a full screen.
    if text.endswith("\n"):
        text = text[:-1]
    return text.replace("\r\n", "\n").replace("\n", "\r\n")


def _row_cells(line: dict, cols: int, cursor_col: int | None) -> list[tuple[str, CellStyle]]:
    written = [x for x in line if 0 <= x < cols]
    last = max(written) if written else -1
    if cursor_col is not None:
        last = max(last, cursor_col)

    cells: list[tuple[str, CellStyle]] = []
    for x in range(last + 1):
        if x in line:
            char = line[x]
            data, style = char.data, _cell_style(char)
        else:
            data, style = " ", DEFAULT_STYLE
        if x == cursor_col:
            style = replace(style, inverse=True)
            data = data or " "
        if not data:
            # Right half of a wide character.
            continue
        cells.append((data, style))
    return cells


def _merge_runs(cells: list[tuple[str, CellStyle]]) -> list[StyledRun]:
    runs: list[StyledRun] = []
    buf: list[str] = []
    current: CellStyle | None = None
    for data, style in cells:
        if style != current and buf:
            runs.append(StyledRun("".join(buf), current or DEFAULT_STYLE))
            buf = []
        current = style
        buf.append(data)
    if buf:
        runs.append(StyledRun("".join(buf), current or DEFAULT_STYLE))
    return runs


def render_capture(
    raw: bytes | str,
    rows: int,
    cols: int,
    cursor: tuple[int, int] | None = None,
) -> list[list[StyledRun]]:
    """Render ``raw`` onto a ``rows`` x ``cols`` grid of styled runs.

    ``cursor`` is ``(col, row)``; when it falls inside the grid that cell is
    drawn inverted.
    """
    if rows <= 0 or cols <= 0:
        return []

    screen = pyte.Screen(cols, rows)
    stream = pyte.Stream(screen)
    stream.feed(_normalize(raw))

    cursor_col: int | None = None
    cursor_row: int | None = None
    if cursor is not None and 0 <= cursor[0] < cols and 0 <= cursor[1] < rows:
        cursor_col, cursor_row = cursor

    grid: list[list[StyledRun]] = []
    for y in range(rows):
        line = screen.buffer[y]
        cells = _row_cells(line, cols, cursor_col if y == cursor_row else None)
        grid.append(_merge_runs(cells))
    return grid


def to_rich_text(grid: list[list[StyledRun]]) -> Text:
    """Join a rendered grid into one ``rich`` Text, rows separated by newlines."""
    text = Text(no_wrap=True, overflow="crop")
    for y, row in enumerate(grid):
        if y:
            text.append("\n")
        for run in row:
            text.append(run.text, style=run.style.to_rich() if run.style != DEFAULT_STYLE else None)
    return text


def plain_lines(grid: list[list[StyledRun]]) -> list[str]:
    """Text content of each row, styles dropped."""
    return ["".join(run.text for run in row) for row in grid]
