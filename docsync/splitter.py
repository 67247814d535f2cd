from bisect import bisect_right

from .models import Chunk, PositionRange


def _line_starts(text: str) -> list[int]:
    starts = [0]
    starts.extend(i + 1 for i, ch in enumerate(text) if ch == "\n")
    return starts


def _cut_point(text: str, floor: int, end: int) -> int:
    """Latest line break (else whitespace) in [floor, end); returns the offset just after it."""
    newline = text.rfind("\n", floor, end)
    if newline != -1:
        return newline + 1
    for i in range(end - 1, floor - 1, -1):
        if text[i].isspace():
            return i + 1
    return end


def split_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[Chunk]:
    """Split `text` into overlapping windows of at most `chunk_size` characters.

    Windows are produced in a single forward pass. A window prefers to end after a
    line break (or whitespace), and the next one starts `overlap` characters before
    that end, moved back to a nearby word boundary, so consecutive chunks share at
    least `overlap` characters. Positions are character offsets plus 1-based lines.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    if not text.strip():
        return []

    n = len(text)
    line_starts = _line_starts(text)
    chunks: list[Chunk] = []
    start = 0
    while start < n:
        end = min(start + chunk_size, n)
        if end < n:
            end = _cut_point(text, start + overlap + 1, end)

        piece = text[start:end]
        if piece.strip():
            chunks.append(
                Chunk(
                    index=len(chunks),
                    text=piece,
                    position=PositionRange(
                        char_start=start,
                        char_end=end,
                        line_from=bisect_right(line_starts, start),
                        line_to=bisect_right(line_starts, end - 1),
                    ),
                )
            )
        if end >= n:
            break

        next_start = end - overlap
        for i in range(next_start, max(start + 1, end - 2 * overlap), -1):
            if text[i - 1].isspace():
                next_start = i
                break
        start = next_start
    return chunks
