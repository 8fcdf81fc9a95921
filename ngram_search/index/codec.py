"""
Binary Codec for NGramIndex

Layout (all integers little-endian):

    Header:
        [magic: 4 bytes "NGIX"][version: u16][n: u32][N: u64][vocab_size: u64]
    Vocabulary (vocab_size entries, in index order):
        [gram_len: u16][gram: utf-8][df: u64][count: u64]
        count x [doc_id: u64][tf: u32]
    Document table:
        [count: u64]
        count x [doc_id: u64][ngram_count: u32][norm: f64]
    Trailer:
        [crc32: u32] over every preceding byte

Weights are not stored: they are recomputed from df and N with the same
function the builder uses, so a reloaded index scores bit-for-bit like the
one that was saved. Norms are stored exactly as float64.

Decoding never returns a partial index: any unknown version, short read or
inconsistency yields Err(FormatError).
"""

from __future__ import annotations

import logging
import math
import struct
import zlib
from pathlib import Path
from typing import Union

import numpy as np

from ngram_search.core.errors import Err, FormatError, Ok, Result
from ngram_search.core.types import DOC_ID_DTYPE, SLOT_DTYPE, PostingList
from ngram_search.index.builder import idf_weights
from ngram_search.index.ngram_index import NGramIndex

logger = logging.getLogger(__name__)


# =============================================================================
# FORMAT CONSTANTS
# =============================================================================
MAGIC = b"NGIX"
VERSION = 1
SUPPORTED_VERSIONS = frozenset({VERSION})

_HEADER = struct.Struct("<4sHIQQ")
_GRAM_LEN = struct.Struct("<H")
_POSTINGS_HEADER = struct.Struct("<QQ")
_COUNT = struct.Struct("<Q")
_CRC = struct.Struct("<I")

# numpy record layouts matching the packed entries
_POSTING_DTYPE = np.dtype([("doc_id", "<u8"), ("tf", "<u4")])
_DOCUMENT_DTYPE = np.dtype([("doc_id", "<u8"), ("length", "<u4"), ("norm", "<f8")])

_MAX_U32 = 2**32 - 1


# =============================================================================
# SERIALIZATION
# =============================================================================
def serialize(index: NGramIndex) -> bytes:
    """
    Encode `index` into the versioned binary format.

    Raises:
        ValueError: If a document has more n-grams than the format can hold
    """
    doc_ids = index.doc_ids
    chunks: list[bytes] = [
        _HEADER.pack(MAGIC, VERSION, index.n, index.num_documents, index.vocabulary_size)
    ]

    for pl in index.postings:
        gram = pl.ngram.encode("utf-8")
        chunks.append(_GRAM_LEN.pack(len(gram)))
        chunks.append(gram)
        chunks.append(_POSTINGS_HEADER.pack(pl.df, len(pl)))
        entries = np.empty(len(pl), dtype=_POSTING_DTYPE)
        entries["doc_id"] = doc_ids[pl.slots]
        entries["tf"] = pl.tfs
        chunks.append(entries.tobytes())

    if index.num_documents and int(index.doc_lengths.max()) > _MAX_U32:
        raise ValueError("document n-gram count exceeds u32 range")
    documents = np.empty(index.num_documents, dtype=_DOCUMENT_DTYPE)
    documents["doc_id"] = doc_ids
    documents["length"] = index.doc_lengths
    documents["norm"] = index.norms
    chunks.append(_COUNT.pack(index.num_documents))
    chunks.append(documents.tobytes())

    body = b"".join(chunks)
    data = body + _CRC.pack(zlib.crc32(body))
    logger.debug(
        "Serialized n-gram index: %d documents, %d n-grams, %d bytes",
        index.num_documents, index.vocabulary_size, len(data),
    )
    return data


# =============================================================================
# DESERIALIZATION
# =============================================================================
class _DecodeFailure(Exception):
    """Internal control flow: carries the FormatError out of nested parsing."""

    def __init__(self, error: FormatError) -> None:
        super().__init__(str(error))
        self.error = error


class _Reader:
    """Bounds-checked cursor over the serialized bytes."""

    __slots__ = ("_view", "_offset", "_end")

    def __init__(self, data: bytes, end: int) -> None:
        self._view = memoryview(data)
        self._offset = 0
        self._end = end

    @property
    def offset(self) -> int:
        return self._offset

    def take(self, size: int) -> memoryview:
        available = self._end - self._offset
        if size > available:
            raise _DecodeFailure(FormatError.truncated(self._offset, size, available))
        chunk = self._view[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def array(self, dtype: np.dtype, count: int) -> np.ndarray:
        if count == 0:
            return np.empty(0, dtype=dtype)
        if count > (self._end - self._offset) // dtype.itemsize:
            available = self._end - self._offset
            raise _DecodeFailure(
                FormatError.truncated(self._offset, count * dtype.itemsize, available)
            )
        return np.frombuffer(self.take(count * dtype.itemsize), dtype=dtype)


def deserialize(data: bytes) -> Result[NGramIndex, FormatError]:
    """
    Decode an index produced by `serialize`.

    Returns:
        Ok(NGramIndex) behaviorally identical to the serialized one, or
        Err(FormatError) with code UNSUPPORTED_VERSION, TRUNCATED or
        INCONSISTENT
    """
    try:
        index = _decode(bytes(data))
    except _DecodeFailure as failure:
        logger.warning("Rejected serialized n-gram index: %s", failure.error)
        return Err(failure.error)

    logger.debug(
        "Deserialized n-gram index: %d documents, %d n-grams",
        index.num_documents, index.vocabulary_size,
    )
    return Ok(index)


def _fail(reason: str, **details) -> _DecodeFailure:
    return _DecodeFailure(FormatError.inconsistent(reason, **details))


def _decode(data: bytes) -> NGramIndex:
    # Header is checked before the checksum so that foreign or future
    # payloads report their version instead of a checksum mismatch. A prefix
    # of the magic is a truncated index; anything else is foreign data.
    if not MAGIC.startswith(data[:len(MAGIC)]):
        raise _DecodeFailure(FormatError.unsupported_version(data[:len(MAGIC)]))
    if len(data) < _HEADER.size:
        raise _DecodeFailure(FormatError.truncated(0, _HEADER.size, len(data)))
    _, version, n, num_documents, vocab_size = _HEADER.unpack_from(data)
    if version not in SUPPORTED_VERSIONS:
        raise _DecodeFailure(FormatError.unsupported_version(version))
    if n < 1:
        raise _fail("n-gram length must be >= 1", n=n)

    reader = _Reader(data, len(data))
    reader.take(_HEADER.size)

    # Postings reference documents by id; slots are resolved once the
    # document table has been read.
    grams: list[str] = []
    posting_ids: list[np.ndarray] = []
    posting_tfs: list[np.ndarray] = []
    seen_grams: set[str] = set()

    for _ in range(vocab_size):
        (gram_len,) = reader.unpack(_GRAM_LEN)
        try:
            gram = str(reader.take(gram_len), "utf-8")
        except UnicodeDecodeError:
            raise _fail("n-gram is not valid utf-8", offset=reader.offset) from None
        if len(gram) != n:
            raise _fail("n-gram length does not match n", ngram=gram, n=n)
        if gram in seen_grams:
            raise _fail("duplicate n-gram", ngram=gram)
        seen_grams.add(gram)

        df, count = reader.unpack(_POSTINGS_HEADER)
        if count != df:
            raise _fail("postings count does not match df", ngram=gram, df=df, count=count)
        if df == 0:
            raise _fail("n-gram without postings", ngram=gram)
        entries = reader.array(_POSTING_DTYPE, count)
        ids = entries["doc_id"]
        if len(np.unique(ids)) != len(ids):
            raise _fail("duplicate document id in postings", ngram=gram)
        if np.any(entries["tf"] == 0):
            raise _fail("zero term frequency", ngram=gram)

        grams.append(gram)
        posting_ids.append(ids)
        posting_tfs.append(entries["tf"])

    (doc_count,) = reader.unpack(_COUNT)
    if doc_count != num_documents:
        raise _fail("document table size does not match N", N=num_documents, count=doc_count)
    documents = reader.array(_DOCUMENT_DTYPE, doc_count)

    if reader.offset + _CRC.size > len(data):
        raise _DecodeFailure(
            FormatError.truncated(reader.offset, _CRC.size, len(data) - reader.offset)
        )
    (checksum,) = _CRC.unpack_from(data, reader.offset)
    if reader.offset + _CRC.size != len(data):
        raise _fail("trailing bytes after index", extra=len(data) - reader.offset - _CRC.size)
    if checksum != zlib.crc32(data[:reader.offset]):
        raise _fail("checksum mismatch")

    doc_ids = documents["doc_id"].astype(DOC_ID_DTYPE)
    slot_of = {int(doc_id): slot for slot, doc_id in enumerate(doc_ids)}
    if len(slot_of) != len(doc_ids):
        raise _fail("duplicate document id in document table")
    norms = documents["norm"].astype(np.float64)
    if not np.all(np.isfinite(norms)) or np.any(norms < 0):
        raise _fail("invalid document norm")

    postings: list[PostingList] = []
    tf_sums = np.zeros(doc_count, dtype=SLOT_DTYPE)
    for gram, ids, tfs in zip(grams, posting_ids, posting_tfs):
        try:
            slots = np.fromiter((slot_of[int(i)] for i in ids), dtype=SLOT_DTYPE, count=len(ids))
        except KeyError as exc:
            raise _fail("posting references unknown document", ngram=gram, doc_id=exc.args[0]) from None
        if len(slots) > 1 and np.any(np.diff(slots) <= 0):
            raise _fail("postings not in document order", ngram=gram)
        np.add.at(tf_sums, slots, tfs.astype(SLOT_DTYPE))
        postings.append(PostingList.from_arrays(gram, slots, tfs.copy()))

    lengths = documents["length"].astype(SLOT_DTYPE)
    if not np.array_equal(tf_sums, lengths):
        raise _fail("document n-gram counts do not match postings")
    if np.any((lengths > 0) & (norms == 0)) or np.any((lengths == 0) & (norms != 0)):
        raise _fail("document norm does not match its n-grams")

    dfs = np.fromiter((pl.df for pl in postings), dtype=SLOT_DTYPE, count=len(postings))
    return NGramIndex(
        n=n,
        postings=postings,
        weights=idf_weights(dfs, int(num_documents)),
        doc_ids=doc_ids,
        doc_lengths=lengths,
        norms=norms,
    )


# =============================================================================
# FILE HELPERS
# =============================================================================
def save(index: NGramIndex, path: Union[str, Path]) -> int:
    """Write the serialized index to `path`; returns bytes written."""
    data = serialize(index)
    Path(path).write_bytes(data)
    return len(data)


def load(path: Union[str, Path]) -> Result[NGramIndex, FormatError]:
    """Read and decode an index file. I/O errors propagate as OSError."""
    return deserialize(Path(path).read_bytes())


__all__ = [
    "MAGIC",
    "VERSION",
    "serialize",
    "deserialize",
    "save",
    "load",
]
