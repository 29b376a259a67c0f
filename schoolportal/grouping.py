"""In-memory grouping and joining of fetched rows."""


def group_by(items, key):
    """Group ``items`` by ``key(item)``.

    Returns ``[(key, [items...]), ...]`` with groups ordered by first
    appearance and items kept in input order.
    """
    groups = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return list(groups.items())


def build_matrix(triples, rows, columns, default=None):
    """Build a ``{row: {column: value}}`` matrix over a fixed enumeration.

    Every ``(row, column)`` pair is present exactly once; cells with no triple
    hold ``default``. The first triple for a cell wins and triples outside the
    enumeration are dropped.
    """
    matrix = {r: {c: default for c in columns} for r in rows}
    filled = set()
    for r, c, value in triples:
        if r not in matrix or c not in matrix[r] or (r, c) in filled:
            continue
        matrix[r][c] = value
        filled.add((r, c))
    return matrix


def duplicate_cells(triples):
    """``(row, column)`` pairs that more than one triple claims."""
    seen, dupes = set(), []
    for r, c, _ in triples:
        if (r, c) in seen and (r, c) not in dupes:
            dupes.append((r, c))
        seen.add((r, c))
    return dupes


def left_join(left, right, left_key, right_key):
    """Pair each ``left`` item with the first ``right`` item sharing its key.

    The result has exactly ``len(left)`` pairs in left order; unmatched items
    are paired with ``None``.
    """
    index = {}
    for item in right:
        index.setdefault(right_key(item), item)
    return [(item, index.get(left_key(item))) for item in left]
