from __future__ import annotations
from difflib import SequenceMatcher
from typing import List, Optional, Tuple
import zipfile

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from span_editor.errors import ApplyConsistencyError
from span_editor.ir import Document

# a paragraph's own line breaks (<w:br/>) travel as vertical tabs so that
# "\n" always separates paragraphs
_SOFT_BREAK = "\v"


def read_docx_document(path: str) -> Document:
    doc = DocxDocument(path)
    texts = [p.text.replace("\n", _SOFT_BREAK) for p in doc.paragraphs]
    return Document(
        path=str(path),
        text="\n".join(texts),
        newline="\n" if len(texts) > 1 else None,
        metadata={"format": "docx", "paragraphs": str(len(texts))},
    )


def _align(old: List[str], new: List[str]) -> List[int]:
    """Pick which old paragraphs the (fewer) new lines continue, in order, by best similarity."""
    m, n = len(old), len(new)
    neg = float("-inf")
    best = [[0.0] + [neg] * n for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, min(i, n) + 1):
            take = best[i - 1][j - 1] + SequenceMatcher(None, old[i - 1], new[j - 1]).ratio()
            best[i][j] = max(best[i - 1][j], take)
    keep: List[int] = []
    i, j = m, n
    while j > 0:
        if i - 1 >= j and best[i][j] == best[i - 1][j]:
            i -= 1
        else:
            keep.append(i - 1)
            i -= 1
            j -= 1
    return keep[::-1]


def write_docx_document(document: Document, out_docx: Optional[str] = None) -> None:
    """
    Write edited text back into the Word file it was read from.

    Lines are matched to paragraphs. Edited paragraphs get their new text
    (run formatting inside them is lost) and paragraphs with no surviving
    line are removed. Edits that add or split paragraphs cannot be mapped
    back and raise before anything is saved.
    """
    try:
        doc = DocxDocument(document.path)
    except (PackageNotFoundError, zipfile.BadZipFile) as e:
        raise ApplyConsistencyError(document.path, None, f"cannot reopen Word file for writing: {e}") from e
    paragraphs = list(doc.paragraphs)
    old: List[str] = [p.text.replace("\n", _SOFT_BREAK) for p in paragraphs]
    new: List[str] = document.text.split("\n")

    edits: List[Tuple[int, Optional[str]]] = []
    matcher = SequenceMatcher(a=old, b=new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if (j2 - j1) > (i2 - i1):
            raise ApplyConsistencyError(
                document.path, None,
                f"edit adds paragraphs near paragraph {i1 + 1}; "
                "only in-paragraph edits and paragraph removal map back to Word",
            )
        kept = [i1 + k for k in _align(old[i1:i2], new[j1:j2])]
        for i in range(i1, i2):
            if i not in kept:
                edits.append((i, None))
        for i, after in zip(kept, new[j1:j2]):
            if old[i] != after:
                edits.append((i, after))

    for i, after in sorted(edits, reverse=True):
        p = paragraphs[i]
        if after is None:
            p._element.getparent().remove(p._element)
        else:
            p.text = after.replace(_SOFT_BREAK, "\n")
    doc.save(out_docx or document.path)
