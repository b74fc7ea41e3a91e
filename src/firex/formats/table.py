"""Bordered text tables for the ``table`` output format."""

from typing import List, Sequence

_TOP = ("┌", "┬", "┐")
_MID = ("├", "┼", "┤")
_BOTTOM = ("└", "┴", "┘")
_HORIZONTAL = "─"
_VERTICAL = "│"


def _rule(widths: List[int], corners: Sequence[str]) -> str:
    left, cross, right = corners
    return left + cross.join(_HORIZONTAL * (w + 2) for w in widths) + right


def _row_lines(cells: List[str], widths: List[int]) -> List[str]:
    split = [cell.split("\n") for cell in cells]
    height = max(len(lines) for lines in split)
    out = []
    for i in range(height):
        parts = []
        for lines, width in zip(split, widths):
            text = lines[i] if i < len(lines) else ""
            parts.append(f" {text.ljust(width)} ")
        out.append(_VERTICAL + _VERTICAL.join(parts) + _VERTICAL)
    return out


def render_table(head: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render a grid with a header row and a rule between every row.

    Args:
        head: Column titles
        rows: Cell strings; short rows are padded with empty cells

    Returns:
        The table as a multi-line string
    """
    columns = len(head)
    body = [[str(c) for c in row] + [""] * (columns - len(row)) for row in rows]
    header = [str(h) for h in head]

    widths = []
    for index in range(columns):
        cells = [header[index]] + [row[index] for row in body]
        widths.append(max(len(line) for cell in cells for line in cell.split("\n")))

    lines = [_rule(widths, _TOP)]
    lines.extend(_row_lines(header, widths))
    for row in body:
        lines.append(_rule(widths, _MID))
        lines.extend(_row_lines(row, widths))
    lines.append(_rule(widths, _BOTTOM))
    return "\n".join(lines)
