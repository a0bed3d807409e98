"""Unified diff generation over two text versions of a file.

Lines are aligned with the classic longest-common-subsequence table, which is
O(m*n) in both time and memory. The scanner only diffs files below
``diff_max_file_size``, which keeps the table to a few thousand lines per
side; unbounded inputs would need a linear-space algorithm behind the same
``unified_diff`` signature.
"""

from dataclasses import dataclass, field

EQUAL = "equal"
ADDED = "added"
DELETED = "deleted"

_PREFIX = {EQUAL: " ", ADDED: "+", DELETED: "-"}


@dataclass
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[str] = field(default_factory=list)

    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"


def _lcs_table(old: list[str], new: list[str]) -> list[list[int]]:
    m, n = len(old), len(new)
    table = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        row = table[i]
        prev = table[i - 1]
        line = old[i - 1]
        for j in range(1, n + 1):
            if line == new[j - 1]:
                row[j] = prev[j - 1] + 1
            elif prev[j] >= row[j - 1]:
                row[j] = prev[j]
            else:
                row[j] = row[j - 1]
    return table


def diff_lines(old: list[str], new: list[str]) -> list[tuple[str, str]]:
    """Classify every line of both versions as equal, added, or deleted.

    Common leading and trailing lines are matched directly; the LCS table is
    only built for the differing middle section.
    """
    prefix = 0
    limit = min(len(old), len(new))
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1

    suffix = 0
    while (
        suffix < limit - prefix
        and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]
    ):
        suffix += 1

    old_mid = old[prefix:len(old) - suffix]
    new_mid = new[prefix:len(new) - suffix]
    table = _lcs_table(old_mid, new_mid)

    # Trace back from the bottom-right corner; additions are taken before
    # deletions so that, once reversed, deletions precede additions.
    middle: list[tuple[str, str]] = []
    i, j = len(old_mid), len(new_mid)
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_mid[i - 1] == new_mid[j - 1]:
            middle.append((EQUAL, old_mid[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            middle.append((ADDED, new_mid[j - 1]))
            j -= 1
        else:
            middle.append((DELETED, old_mid[i - 1]))
            i -= 1
    middle.reverse()

    ops = [(EQUAL, line) for line in old[:prefix]]
    ops.extend(middle)
    ops.extend((EQUAL, line) for line in old[len(old) - suffix:])
    return ops


def build_hunks(ops: list[tuple[str, str]], context: int = 3) -> list[Hunk]:
    """Group non-equal lines into hunks padded with ``context`` lines.

    Change clusters separated by fewer than ``2 * context`` unchanged lines
    share a hunk.
    """
    changed = [k for k, (tag, _) in enumerate(ops) if tag != EQUAL]
    if not changed:
        return []

    # old_pos[k] / new_pos[k]: lines of each side consumed before ops[k]
    old_pos = [0] * (len(ops) + 1)
    new_pos = [0] * (len(ops) + 1)
    for k, (tag, _) in enumerate(ops):
        old_pos[k + 1] = old_pos[k] + (tag != ADDED)
        new_pos[k + 1] = new_pos[k] + (tag != DELETED)

    merge_gap = max(2 * context, 1)
    clusters: list[list[int]] = [[changed[0], changed[0]]]
    for k in changed[1:]:
        if k - clusters[-1][1] - 1 < merge_gap:
            clusters[-1][1] = k
        else:
            clusters.append([k, k])

    hunks = []
    for first, last in clusters:
        start = max(0, first - context)
        end = min(len(ops), last + context + 1)
        old_count = old_pos[end] - old_pos[start]
        new_count = new_pos[end] - new_pos[start]
        hunks.append(Hunk(
            old_start=old_pos[start] + 1 if old_count else old_pos[start],
            old_count=old_count,
            new_start=new_pos[start] + 1 if new_count else new_pos[start],
            new_count=new_count,
            lines=[_PREFIX[tag] + line for tag, line in ops[start:end]],
        ))
    return hunks


def unified_diff(old_text: str, new_text: str, label: str = "", context: int = 3) -> str:
    """Return a unified diff of ``old_text`` -> ``new_text``.

    The ``---``/``+++`` header is emitted only when ``label`` is given, so two
    identical texts produce just the header, or an empty string without one.
    """
    ops = diff_lines(old_text.split("\n"), new_text.split("\n"))
    output: list[str] = []
    if label:
        output.append(f"--- {label} (previous)")
        output.append(f"+++ {label} (current)")
    for hunk in build_hunks(ops, context):
        output.append(hunk.header())
        output.extend(hunk.lines)
    return "\n".join(output)
