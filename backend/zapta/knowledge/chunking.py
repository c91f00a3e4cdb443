from __future__ import annotations

import re

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _pack(parts: list[str], max_chunk_size: int, joiner: str) -> list[str]:
    chunks: list[str] = []
    current = ""
    for part in parts:
        if len(current) + len(part) > max_chunk_size and current:
            chunks.append(current.strip())
            current = part
        else:
            current = f"{current}{joiner}{part}" if current else part
    if current.strip():
        chunks.append(current.strip())
    return chunks


def chunk_document(content: str, max_chunk_size: int = 1000) -> list[str]:
    """Split text into chunks of at most `max_chunk_size` characters.

    Paragraphs are packed greedily first; a chunk still over the limit is
    re-packed sentence by sentence. A single sentence longer than the limit
    is kept whole.
    """
    paragraph_chunks = _pack(_PARAGRAPH_SPLIT.split(content), max_chunk_size, "\n\n")

    result: list[str] = []
    for chunk in paragraph_chunks:
        if len(chunk) <= max_chunk_size:
            result.append(chunk)
        else:
            result.extend(_pack(_SENTENCE_SPLIT.split(chunk), max_chunk_size, ". "))
    return [chunk for chunk in result if chunk]
