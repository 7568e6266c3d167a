from __future__ import annotations
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence, Tuple, Union
import codecs
import logging
import os
import shutil
import tempfile

from span_editor.ir import Document, detect_newline

logger = logging.getLogger(__name__)

_UTF8_NAMES = {"utf8", "utf-8", "utf_8", "utf-8-sig", "utf8-sig", "utf_8_sig"}


class CorpusProvider(Protocol):
    """Supplies the documents for one run and persists committed ones."""

    def load(self) -> List[Document]:
        ...

    def commit(self, document: Document) -> None:
        ...


class InMemoryCorpus:
    """Corpus over (path, text) pairs or Documents; commits stay in memory."""

    def __init__(self, items: Iterable[Union[Document, Tuple[str, str]]]):
        self._docs: List[Document] = [
            item if isinstance(item, Document) else Document.from_text(item[0], item[1])
            for item in items
        ]
        self.committed: List[Document] = []

    def load(self) -> List[Document]:
        return list(self._docs)

    def commit(self, document: Document) -> None:
        idx = next(i for i, d in enumerate(self._docs) if d.path == document.path)
        self._docs[idx] = document
        self.committed.append(document)

    def text(self, path: str) -> str:
        return next(d.text for d in self._docs if d.path == path)


def read_text_document(path: Union[str, Path], encoding: str = "utf-8") -> Document:
    raw = Path(path).read_bytes()
    bom = encoding.lower() in _UTF8_NAMES and raw.startswith(codecs.BOM_UTF8)
    if bom:
        raw = raw[len(codecs.BOM_UTF8):]
        encoding = "utf-8"
    # bytes.decode leaves \r\n alone
    text = raw.decode(encoding)
    return Document(
        path=str(path),
        text=text,
        encoding=encoding,
        newline=detect_newline(text),
        bom=bom,
        metadata={"format": "text"},
    )


def write_text_document(document: Document) -> None:
    data = document.text.encode(document.encoding)
    if document.bom:
        data = codecs.BOM_UTF8 + data
    target = Path(document.path)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if target.exists():
            shutil.copymode(str(target), tmp)
        os.replace(tmp, str(target))
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class FileCorpus:
    """Files given explicitly by path. ``.docx`` goes through python-docx, the rest is text."""

    def __init__(self, paths: Sequence[Union[str, Path]], encoding: str = "utf-8"):
        self.paths = [str(p) for p in paths]
        self.encoding = encoding

    def load(self) -> List[Document]:
        docs: List[Document] = []
        for p in self.paths:
            if p.lower().endswith(".docx"):
                from span_editor.adapters.docx_adapter import read_docx_document
                docs.append(read_docx_document(p))
            else:
                docs.append(read_text_document(p, self.encoding))
        logger.info(f"Loaded {len(docs)} documents")
        return docs

    def commit(self, document: Document) -> None:
        if document.metadata.get("format") == "docx":
            from span_editor.adapters.docx_adapter import write_docx_document
            write_docx_document(document)
        else:
            write_text_document(document)
        logger.info(f"Wrote {document.path}")


def open_corpus(paths: Sequence[Union[str, Path]], encoding: str = "utf-8") -> FileCorpus:
    missing = [str(p) for p in paths if not Path(p).is_file()]
    if missing:
        raise FileNotFoundError(f"not a file: {', '.join(missing)}")
    return FileCorpus(paths, encoding=encoding)
