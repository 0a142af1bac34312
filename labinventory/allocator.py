"""Sequential ``<LAB>-<NNN>`` code allocation.

Codes are derived from what is already stored rather than from an in-memory
counter, so they survive restarts.  Callers allocating a batch read the
starting code once and step it locally with :func:`sequence`.
"""

CODE_WIDTH = 3


def format_id_code(lab: str, number: int) -> str:
    return f"{lab}-{number:0{CODE_WIDTH}d}"


def parse_suffix(id_code: str):
    """Return the numeric part of ``id_code`` or ``None`` if it has none."""
    _, sep, tail = id_code.rpartition("-")
    if not sep or not tail.isdigit():
        return None
    return int(tail)


def next_id_for_lab(repository, lab: str) -> str:
    """Return the code following the highest one already issued for ``lab``.

    Suffixes are compared as integers, so ``MCA-1000`` sorts after
    ``MCA-999``.  Repository errors propagate; nothing is guessed on a failed
    read.
    """
    numbers = [n for n in (parse_suffix(c) for c in repository.lab_codes(lab)) if n is not None]
    return format_id_code(lab, max(numbers) + 1 if numbers else 1)


def sequence(first_code: str, count: int) -> list:
    lab, _, _ = first_code.rpartition("-")
    start = parse_suffix(first_code)
    return [format_id_code(lab, start + i) for i in range(count)]
