#!/usr/bin/env python3
"""
Exact Read Occurrence Search and Genome Coverage Profiling

Locates every exact, overlap-permitting occurrence of short reads inside
reference genomes, on both strands:
1. Suffix array built with ternary string quicksort, queried with an
   LCP-accelerated binary search
2. Naive overlap-aware scan (reference engine)
3. Occurrences folded into per-genome coverage profiles
"""

import argparse
import re
import sys
import time
from dataclasses import dataclass
from typing import (Callable, Dict, Iterable, Iterator, List, Mapping, Optional,
                    Protocol, Tuple, Type, Union)

import numpy as np


DNA_BASES = "ACGT"
FORWARD = "forward"
REVERSE = "reverse"

SENTINEL = 0  # byte appended to every suffix array text, below any base
INSERTION_SORT_CUTOFF = 10

_COMPLEMENT = str.maketrans("ACGT", "TGCA")
_VALID_DNA = re.compile(r'[ACGT]+')


class ReadCoverageError(Exception):
    """Base class for every error raised by readcov."""


class InvalidSequenceError(ReadCoverageError, ValueError):
    """Sequence contains characters outside the accepted alphabet."""


class EmptyInputError(ReadCoverageError, ValueError):
    """Empty collection, identifier or sequence."""


class DuplicateIdError(ReadCoverageError, ValueError):
    """The same identifier appears twice in one source."""


class PatternLongerThanTextError(ReadCoverageError, IndexError):
    """Naive search called with a pattern longer than the text."""


class IndexOutOfRangeError(ReadCoverageError, IndexError):
    """Rank or position outside the valid range."""


class FileFormatError(ReadCoverageError, ValueError):
    """Malformed FASTA or FASTQ input."""


class SearchCancelled(ReadCoverageError):
    """The caller's stop flag fired between two search steps."""


def _natural_sort_key(value: str):
    """Return a tuple usable for natural sorting (e.g., chr2 before chr10)."""
    if value is None:
        return ()

    parts = re.split(r'(\d+)', str(value))
    key_parts: List[Tuple[int, object]] = []
    for part in parts:
        if not part:
            continue
        if part.isdigit():
            key_parts.append((0, int(part)))
        else:
            key_parts.append((1, part.lower()))
    return tuple(key_parts)


def _encode(seq: Union[str, bytes]) -> bytes:
    """Encode a sequence to ASCII bytes, rejecting anything the sentinel could clash with."""
    if isinstance(seq, bytes):
        data = seq
    else:
        try:
            data = seq.encode('ascii')
        except UnicodeEncodeError as e:
            raise InvalidSequenceError(f"Sequence contains non-ASCII characters: {e.reason}") from e
    if b'\x00' in data:
        raise InvalidSequenceError("Sequence contains a NUL byte")
    return data


def reverse_complement(seq: str) -> str:
    """Get reverse complement of DNA sequence.

    The input is upper-cased first; anything outside A, C, G, T is rejected.

    Raises:
        InvalidSequenceError: if ``seq`` is empty or holds a non-ACGT character
    """
    upper = seq.upper()
    if not _VALID_DNA.fullmatch(upper):
        preview = seq if len(seq) <= 30 else seq[:30] + '...'
        raise InvalidSequenceError(
            f"Invalid DNA sequence {preview!r}: only A, C, G and T are allowed"
        )
    return upper[::-1].translate(_COMPLEMENT)


def _kasai_lcp(text: bytes, order: List[int], n: int) -> np.ndarray:
    """Adjacent-rank LCP table via Kasai, restricted to the first ``n`` characters.

    ``lcp[r]`` is the LCP of the suffixes ranked ``r`` and ``r - 1``; ``lcp[0]`` is 0.
    """
    lcp = np.zeros(n, dtype=np.int32)
    rank = [0] * n
    for r, pos in enumerate(order):
        rank[pos] = r
    h = 0
    for i in range(n):
        r = rank[i]
        if r > 0:
            j = order[r - 1]
            while i + h < n and j + h < n and text[i + h] == text[j + h]:
                h += 1
            lcp[r] = h
            if h > 0:
                h -= 1
        else:
            h = 0
    return lcp


class SuffixArray:
    """Lexicographic ordering of the suffixes of one sequence.

    The text is augmented with a single NUL sentinel ranked below every base,
    so suffix comparisons always terminate and a suffix that is a proper prefix
    of another sorts first.
    """

    CUTOFF = INSERTION_SORT_CUTOFF

    def __init__(self, text: str):
        """
        Build the suffix array.

        Args:
            text: Genome sequence (non-empty)
        """
        if not text:
            raise EmptyInputError("Cannot build a suffix array for an empty sequence")

        self.n = len(text)
        self.text: bytes = _encode(text) + bytes([SENTINEL])
        self.text_arr = np.frombuffer(self.text, dtype=np.uint8)

        order = list(range(self.n))
        self._sort(order)
        self._index = np.asarray(order, dtype=np.int64)
        self._lcp = _kasai_lcp(self.text, order, self.n)

    def __len__(self) -> int:
        return self.n

    def _sort(self, order: List[int]) -> None:
        """Three-way string quicksort over ``order``, insertion sort below the cutoff.

        Ranges are kept on an explicit stack; on repetitive genomes the equal
        partition descends one character at a time.
        """
        text = self.text
        stack = [(0, self.n - 1, 0)]
        while stack:
            lo, hi, d = stack.pop()
            if hi < lo + self.CUTOFF:
                self._insertion(order, lo, hi, d)
                continue

            lt, gt = lo, hi
            v = text[order[lo] + d]
            i = lo + 1
            while i <= gt:
                t = text[order[i] + d]
                if t < v:
                    order[lt], order[i] = order[i], order[lt]
                    lt += 1
                    i += 1
                elif t > v:
                    order[i], order[gt] = order[gt], order[i]
                    gt -= 1
                else:
                    i += 1

            stack.append((lo, lt - 1, d))
            # Suffixes that hit the sentinel are already ordered, shorter first
            if v != SENTINEL:
                stack.append((lt, gt, d + 1))
            stack.append((gt + 1, hi, d))

    def _insertion(self, order: List[int], lo: int, hi: int, d: int) -> None:
        for i in range(lo, hi + 1):
            j = i
            while j > lo and self._less(order[j], order[j - 1], d):
                order[j], order[j - 1] = order[j - 1], order[j]
                j -= 1

    def _less(self, i: int, j: int, d: int) -> bool:
        """True if the suffix at ``i`` sorts before the suffix at ``j``, both known equal up to ``d``."""
        if i == j:
            return False
        text = self.text
        n = self.n
        i += d
        j += d
        while i < n and j < n:
            if text[i] != text[j]:
                return text[i] < text[j]
            i += 1
            j += 1
        return i > j

    def index(self, i: int) -> int:
        """Text offset of the i-th smallest suffix."""
        if i < 0 or i >= self.n:
            raise IndexOutOfRangeError(f"Rank {i} outside [0, {self.n})")
        return int(self._index[i])

    def lcp(self, i: int) -> int:
        """LCP of the suffixes ranked ``i`` and ``i - 1``."""
        if i < 1 or i >= self.n:
            raise IndexOutOfRangeError(f"Rank {i} outside [1, {self.n})")
        return int(self._lcp[i])

    def lcp_between(self, i: int, j: int) -> int:
        """LCP of the suffixes starting at text offsets ``i`` and ``j`` (sentinel excluded)."""
        text = self.text
        n = self.n
        length = 0
        while i < n and j < n:
            if text[i] != text[j]:
                return length
            i += 1
            j += 1
            length += 1
        return length

    def lcp_with(self, query: Union[str, bytes], i: int, start: int = 0) -> int:
        """LCP of ``query`` and the suffix starting at text offset ``i``.

        Args:
            query: External string
            i: Text offset of the suffix
            start: Number of leading characters already known to match

        Returns:
            Total common prefix length, including the ``start`` skipped characters
        """
        q = _encode(query)
        text = self.text
        n = self.n
        m = len(q)
        length = start
        i += start
        while i < n and length < m:
            if text[i] != q[length]:
                break
            i += 1
            length += 1
        return length

    def compare(self, query: Union[str, bytes], i: int, start: int = 0) -> int:
        """Three-way comparison of ``query`` against the suffix at text offset ``i``.

        Returns the signed character-code difference at the first mismatch,
        +1 if the suffix ends first and -1 if the query is a proper prefix of
        the suffix. Comparison begins ``start`` characters in.
        """
        q = _encode(query)
        text = self.text
        n = self.n
        m = len(q)
        j = start
        i += start
        while i < n and j < m:
            if q[j] != text[i]:
                return q[j] - text[i]
            i += 1
            j += 1
        if i < n:
            return -1
        if j < m:
            return +1
        return 0

    def select(self, i: int) -> str:
        """The i-th smallest suffix as a string (diagnostic)."""
        if i < 0 or i >= self.n:
            raise IndexOutOfRangeError(f"Rank {i} outside [0, {self.n})")
        return self.text[int(self._index[i]):self.n].decode('ascii')

    def positions(self, lo: int, hi: int) -> List[int]:
        """Text offsets of ranks ``lo..hi`` (inclusive) in ascending text order."""
        return np.sort(self._index[lo:hi + 1]).tolist()


class SearchEngine(Protocol):
    """Anything that can list the exact occurrences of a query in one genome.

    Engines are constructed per genome and queried once per read orientation.
    """

    name: str

    def find(self, query: str) -> List[int]: ...


@dataclass(frozen=True)
class _Probe:
    """Last rank compared against the query and the LCP established there."""
    rank: int
    lcp: int


class SuffixArraySearchEngine:
    """Occurrence search backed by a suffix array of the genome."""

    name = "suffix-array"

    def __init__(self, text: str):
        self.suffix_array = SuffixArray(text)

    def find(self, query: str) -> List[int]:
        """
        Locate all positions of query in the genome.

        Every suffix starting with ``query`` sits in one contiguous rank block;
        one rank inside the block is found by binary search and the block is
        then grown in both directions using the adjacent-rank LCP table.

        Returns:
            Ascending list of start offsets (empty if none)
        """
        if not query:
            raise EmptyInputError("Query must not be empty")
        q = _encode(query)
        sa = self.suffix_array
        k = self._binary_search(q)
        if k == -1:
            return []

        m = len(q)
        lo = hi = k
        while lo > 0 and sa.lcp(lo) >= m:
            lo -= 1
        while hi < len(sa) - 1 and sa.lcp(hi + 1) >= m:
            hi += 1
        return sa.positions(lo, hi)

    def _binary_search(self, query: bytes) -> int:
        """Return a rank whose suffix starts with ``query``, or -1.

        Characters already known to match are never compared twice: the
        search remembers the probe with the longest LCP seen so far and, when
        a new midpoint diverges from that probe earlier or later than the
        query did, the direction follows without touching the text.
        """
        sa = self.suffix_array
        m = len(query)
        lo, hi = 0, len(sa) - 1
        best: Optional[_Probe] = None

        while lo <= hi:
            mid = lo + (hi - lo) // 2
            pos = sa.index(mid)

            if best is None:
                cmp = sa.compare(query, pos)
                if cmp == 0:
                    return mid
                cp = sa.lcp_with(query, pos)
                if cmp < 0 and cp >= m:
                    return mid
                best = _Probe(mid, cp)
            else:
                mid_cp = sa.lcp_between(pos, sa.index(best.rank))
                if mid_cp == best.lcp:
                    cp = sa.lcp_with(query, pos, start=best.lcp)
                    if cp >= m:
                        return mid
                    cmp = sa.compare(query, pos, start=cp)
                    if cp > best.lcp:
                        best = _Probe(mid, cp)
                elif mid_cp < best.lcp:
                    # mid departs from the best probe before the query does
                    cmp = 1 if mid < best.rank else -1
                else:
                    # mid agrees with the best probe past the query's mismatch
                    cmp = -1 if mid < best.rank else 1

            if cmp < 0:
                hi = mid - 1
            else:
                lo = mid + 1

        return -1


def naive_occurrences(text: Union[str, bytes], pattern: Union[str, bytes]) -> List[int]:
    """Overlap-aware linear scan of ``text`` for ``pattern``.

    After a mismatch or a full match the pattern restarts one position after
    the previous attempt began, so overlapping occurrences are all reported.

    Raises:
        EmptyInputError: if either input is empty
        PatternLongerThanTextError: if the pattern does not fit in the text
    """
    if not text or not pattern:
        raise EmptyInputError("The read or the genome is empty")
    if len(pattern) > len(text):
        raise PatternLongerThanTextError(
            f"Pattern length {len(pattern)} exceeds text length {len(text)}"
        )

    genome = _encode(text)
    read = _encode(pattern)
    occurrences: List[int] = []
    n = len(genome)
    m = len(read)
    i = 0  # cursor in genome
    j = 0  # cursor in read

    while i <= n - m or j != 0:
        if genome[i] == read[j]:
            i += 1
            j += 1
        else:
            i = i - j + 1
            j = 0
        if j == m:
            occurrences.append(i - m)
            i = i - j + 1
            j = 0

    return occurrences


class NaiveSearchEngine:
    """Reference engine scanning the genome directly for every query."""

    name = "naive"

    def __init__(self, text: str):
        if not text:
            raise EmptyInputError("Genome sequence must not be empty")
        self.text = _encode(text)

    def find(self, query: str) -> List[int]:
        return naive_occurrences(self.text, query)


ENGINES: Dict[str, Type[SearchEngine]] = {
    SuffixArraySearchEngine.name: SuffixArraySearchEngine,
    NaiveSearchEngine.name: NaiveSearchEngine,
}


def get_engine(name: str) -> Type[SearchEngine]:
    """Look up a search engine class by name."""
    try:
        return ENGINES[name]
    except KeyError:
        known = ", ".join(sorted(ENGINES))
        raise ValueError(f"Unknown search engine {name!r} (choose from: {known})") from None


@dataclass(frozen=True)
class OccurrenceRecord:
    """All occurrences of one read, in one orientation, within one genome."""
    genome_id: str
    read_id: str
    read_length: int
    orientation: str  # FORWARD or REVERSE
    positions: Tuple[int, ...]

    @property
    def forward(self) -> bool:
        return self.orientation == FORWARD

    def to_line(self) -> str:
        """Results line: read id, read length, orientation, genome id, positions."""
        fields = [self.read_id, str(self.read_length), self.orientation, self.genome_id]
        fields.extend(str(p) for p in self.positions)
        return " ".join(fields)

    def to_bed_lines(self) -> Iterator[str]:
        strand = '+' if self.forward else '-'
        for p in self.positions:
            yield f"{self.genome_id}\t{p}\t{p + self.read_length}\t{self.read_id}\t0\t{strand}"


@dataclass
class CoverageProfile:
    """Per-position read depth for one genome."""
    genome_id: str
    counts: np.ndarray

    def __len__(self) -> int:
        return int(self.counts.size)

    @property
    def mean_depth(self) -> float:
        return float(self.counts.mean()) if self.counts.size else 0.0

    @property
    def max_depth(self) -> int:
        return int(self.counts.max()) if self.counts.size else 0

    @property
    def breadth(self) -> float:
        """Fraction of positions covered by at least one read."""
        if not self.counts.size:
            return 0.0
        return float(np.count_nonzero(self.counts)) / self.counts.size

    def to_bedgraph_lines(self) -> Iterator[str]:
        """Runs of equal non-zero depth as bedGraph lines."""
        counts = self.counts
        if not counts.size:
            return
        change = np.flatnonzero(np.diff(counts)) + 1
        starts = np.concatenate(([0], change))
        ends = np.concatenate((change, [counts.size]))
        for start, end in zip(starts.tolist(), ends.tolist()):
            depth = int(counts[start])
            if depth:
                yield f"{self.genome_id}\t{start}\t{end}\t{depth}"


SequenceSource = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def validate_sequences(entries: SequenceSource, label: str) -> Dict[str, str]:
    """Check an id -> sequence source and return it as an upper-cased dict.

    Args:
        entries: Mapping, or iterable of (id, sequence) pairs
        label: Name used in error messages ("genomes", "reads")

    Raises:
        EmptyInputError: empty source, or an empty/None id or sequence
        DuplicateIdError: an id repeated in a pair iterable
    """
    if entries is None:
        raise EmptyInputError(f"No {label} given")
    items = entries.items() if isinstance(entries, Mapping) else entries

    sequences: Dict[str, str] = {}
    for seq_id, seq in items:
        if seq_id is None or seq_id == "":
            raise EmptyInputError(f"{label}: identifiers must not be empty")
        if not isinstance(seq_id, str):
            raise TypeError(f"{label}: identifier {seq_id!r} is not a string")
        if seq is None or seq == "":
            raise EmptyInputError(f"{label}: sequence {seq_id!r} is empty")
        if not isinstance(seq, str):
            raise TypeError(f"{label}: sequence {seq_id!r} is not a string")
        if seq_id in sequences:
            raise DuplicateIdError(f"{label}: identifier {seq_id!r} appears more than once")
        sequences[seq_id] = seq.upper()

    if not sequences:
        raise EmptyInputError(f"No {label} given")
    return sequences


def _check_stop(should_stop: Optional[Callable[[], bool]]) -> None:
    if should_stop is not None and should_stop():
        raise SearchCancelled("Search cancelled")


class SearchOrchestrator:
    """Runs every read against every genome, in both orientations, through one engine."""

    def __init__(self, genomes: SequenceSource, reads: SequenceSource,
                 engine: Union[str, Type[SearchEngine]] = SuffixArraySearchEngine.name):
        """
        Validate the inputs of one search session.

        Args:
            genomes: Genome id -> sequence
            reads: Read id -> sequence (A, C, G, T only)
            engine: Engine name from ENGINES, or an engine class
        """
        self.genomes = validate_sequences(genomes, "genomes")
        self.reads = validate_sequences(reads, "reads")
        self.engine_cls = get_engine(engine) if isinstance(engine, str) else engine
        # Fails on the first read outside ACGT, before any searching
        self.reverse_reads = {read_id: reverse_complement(seq) for read_id, seq in self.reads.items()}

    def search_genome(self, genome_id: str,
                      should_stop: Optional[Callable[[], bool]] = None) -> List[OccurrenceRecord]:
        """Search all reads against one genome with a freshly built engine."""
        genome = self.genomes[genome_id]
        engine = self.engine_cls(genome)
        records: List[OccurrenceRecord] = []

        for read_id, read in self.reads.items():
            _check_stop(should_stop)
            # A read that cannot fit has no occurrence in this genome
            if len(read) > len(genome):
                continue
            for orientation, query in ((FORWARD, read), (REVERSE, self.reverse_reads[read_id])):
                positions = engine.find(query)
                if positions:
                    records.append(OccurrenceRecord(
                        genome_id=genome_id,
                        read_id=read_id,
                        read_length=len(read),
                        orientation=orientation,
                        positions=tuple(positions),
                    ))
        return records

    def search(self, should_stop: Optional[Callable[[], bool]] = None) -> List[OccurrenceRecord]:
        """Search every (genome, read) pair.

        Args:
            should_stop: Optional callable polled between genomes and between
                reads; when it returns True the search raises SearchCancelled.

        Returns:
            Occurrence records in no particular order
        """
        records: List[OccurrenceRecord] = []
        for genome_id in self.genomes:
            _check_stop(should_stop)
            records.extend(self.search_genome(genome_id, should_stop))
        return records

    def build_coverage_shells(self) -> List[CoverageProfile]:
        """Zero-filled coverage profiles, one per genome, sorted by genome id."""
        return [
            CoverageProfile(genome_id, np.zeros(len(self.genomes[genome_id]), dtype=np.int64))
            for genome_id in sorted(self.genomes)
        ]


def fold_coverage(records: Iterable[OccurrenceRecord],
                  shells: List[CoverageProfile]) -> List[CoverageProfile]:
    """Add every occurrence window ``[p, p + read_length)`` to its genome's profile.

    The shells are left untouched; new profiles are returned in the same order.

    Raises:
        KeyError: a record names a genome without a profile
        IndexOutOfRangeError: an occurrence window runs outside its genome
    """
    # Difference arrays: +1 where a window opens, -1 one past where it closes
    deltas = {profile.genome_id: np.zeros(len(profile) + 1, dtype=np.int64) for profile in shells}

    for record in records:
        try:
            delta = deltas[record.genome_id]
        except KeyError:
            raise KeyError(f"No coverage profile for genome {record.genome_id!r}") from None
        if not record.positions:
            continue
        starts = np.asarray(record.positions, dtype=np.int64)
        genome_length = delta.size - 1
        if starts.min() < 0 or starts.max() + record.read_length > genome_length:
            raise IndexOutOfRangeError(
                f"Occurrence of {record.read_id!r} runs outside genome "
                f"{record.genome_id!r} (length {genome_length})"
            )
        np.add.at(delta, starts, 1)
        np.add.at(delta, starts + record.read_length, -1)

    return [
        CoverageProfile(profile.genome_id, profile.counts + np.cumsum(deltas[profile.genome_id][:-1]))
        for profile in shells
    ]


def sorted_records(records: Iterable[OccurrenceRecord]) -> List[OccurrenceRecord]:
    """Deterministic order: genome id and read id (natural), forward first, first position."""
    return sorted(
        records,
        key=lambda r: (_natural_sort_key(r.genome_id), _natural_sort_key(r.read_id),
                       0 if r.forward else 1, r.positions[:1]),
    )


def _add_sequence(sequences: Dict[str, str], seq_id: str, seq: str, source: str) -> None:
    if not seq_id:
        raise EmptyInputError(f"{source}: a record has an empty identifier")
    if seq_id in sequences:
        raise DuplicateIdError(f"{source}: identifier {seq_id!r} appears more than once")
    if not seq:
        raise EmptyInputError(f"{source}: sequence {seq_id!r} is empty")
    sequences[seq_id] = seq


def load_fasta(fasta_file: str) -> Dict[str, str]:
    """Load genome sequences from a (multi-)FASTA file.

    The id is the first word of the header, without a trailing '|'.
    Sequences are upper-cased.
    """
    sequences: Dict[str, str] = {}
    current_id = None
    current_seq: List[str] = []

    with open(fasta_file, 'r') as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            if line.startswith('>'):
                if current_id is not None:
                    _add_sequence(sequences, current_id, ''.join(current_seq), fasta_file)
                words = line[1:].split()
                current_id = words[0] if words else ""
                if current_id.endswith('|'):
                    current_id = current_id[:-1]
                current_seq = []
            elif current_id is None:
                raise FileFormatError(f"{fasta_file}:{line_no}: sequence data before the first '>' header")
            else:
                current_seq.append(line.upper())

    if current_id is None:
        raise EmptyInputError(f"{fasta_file}: no FASTA records found")
    _add_sequence(sequences, current_id, ''.join(current_seq), fasta_file)
    return sequences


def load_fastq(fastq_file: str) -> Dict[str, str]:
    """Load reads from a FASTQ file (four lines per record, qualities discarded)."""
    reads: Dict[str, str] = {}

    with open(fastq_file, 'r') as f:
        lines = [line.rstrip('\r\n') for line in f]

    i = 0
    while i < len(lines):
        header = lines[i]
        if not header.strip():
            i += 1
            continue
        if i + 3 >= len(lines):
            raise FileFormatError(f"{fastq_file}:{i + 1}: unexpected end of file inside a record")
        if not header.startswith('@'):
            raise FileFormatError(f"{fastq_file}:{i + 1}: record header does not start with '@'")
        seq, plus, qual = lines[i + 1].strip(), lines[i + 2], lines[i + 3].strip()
        if not plus.startswith('+'):
            raise FileFormatError(f"{fastq_file}:{i + 3}: separator line does not start with '+'")
        if len(seq) != len(qual):
            raise FileFormatError(
                f"{fastq_file}:{i + 4}: quality string length {len(qual)} "
                f"differs from read length {len(seq)}"
            )
        words = header[1:].split()
        _add_sequence(reads, words[0] if words else "", seq.upper(), fastq_file)
        i += 4

    if not reads:
        raise EmptyInputError(f"{fastq_file}: no FASTQ records found")
    return reads


def save_results(records: Iterable[OccurrenceRecord], output_file: str, format_type: str = "text"):
    """Save occurrence records to file."""
    if format_type not in ("text", "bed"):
        raise ValueError(f"Unknown results format {format_type!r} (choose from: text, bed)")
    ordered = sorted_records(records)

    with open(output_file, 'w') as f:
        if format_type == "text":
            for record in ordered:
                f.write(record.to_line() + "\n")

        elif format_type == "bed":
            f.write("# Exact read occurrences (BED6)\n")
            f.write("# genome\tstart\tend\tread\tscore\tstrand\n")
            for record in ordered:
                for line in record.to_bed_lines():
                    f.write(line + "\n")


def save_coverage(profiles: Iterable[CoverageProfile], output_file: str):
    """Save coverage profiles as bedGraph (zero-depth runs omitted)."""
    with open(output_file, 'w') as f:
        f.write("track type=bedGraph name=readcov description=\"Exact read coverage\"\n")
        for profile in profiles:
            for line in profile.to_bedgraph_lines():
                f.write(line + "\n")


@dataclass
class SearchConfig:
    """Parameters of one command-line run."""
    genomes: str
    reads: str
    engine: str = SuffixArraySearchEngine.name
    output: Optional[str] = None
    output_format: str = "text"
    coverage: Optional[str] = None
    show_progress: bool = True


def _timestamp() -> str:
    return time.strftime("%Y/%m/%d %H:%M:%S")


def _format_elapsed(elapsed: float) -> str:
    return f"{int(elapsed//60)}m {int(elapsed%60)}s" if elapsed >= 60 else f"{int(elapsed)}s"


def _progress_bar(done: int, total: int, bar_length: int = 40) -> str:
    filled = int(bar_length * done / total) if total else bar_length
    return '█' * filled + '░' * (bar_length - filled)


def run_search(config: SearchConfig) -> Tuple[List[OccurrenceRecord], List[CoverageProfile]]:
    """Load inputs, search, fold coverage and write the requested outputs."""
    show = config.show_progress

    genomes = load_fasta(config.genomes)
    reads = load_fastq(config.reads)
    if show:
        print(f"Loaded {len(genomes)} genome(s) and {len(reads)} read(s)")

    orchestrator = SearchOrchestrator(genomes, reads, engine=config.engine)
    shells = orchestrator.build_coverage_shells()

    if show:
        print(f"{_timestamp()} - search started ({config.engine})")
    start_time = time.time()

    records: List[OccurrenceRecord] = []
    genome_ids = list(orchestrator.genomes)
    total = len(genome_ids)
    for idx, genome_id in enumerate(genome_ids, 1):
        if show:
            elapsed_str = _format_elapsed(time.time() - start_time)
            print(f"\r[{_progress_bar(idx - 1, total)}] {(idx - 1) / total * 100:.1f}% "
                  f"Searching {genome_id} ({len(orchestrator.genomes[genome_id]):,} bp) - {elapsed_str}",
                  end='', flush=True)
        records.extend(orchestrator.search_genome(genome_id))

    if show:
        elapsed_str = _format_elapsed(time.time() - start_time)
        print(f"\r[{_progress_bar(total, total)}] 100.0% {total} genome(s) searched - {elapsed_str}     ")
        print(f"{_timestamp()} - search finished ({config.engine})")

    profiles = fold_coverage(records, shells)

    if config.output:
        save_results(records, config.output, config.output_format)
        if show:
            print(f"Results saved to {config.output} ({config.output_format} format)")
    if config.coverage:
        save_coverage(profiles, config.coverage)
        if show:
            print(f"Coverage saved to {config.coverage}")

    return records, profiles


def parse_args(argv: Optional[List[str]] = None) -> SearchConfig:
    parser = argparse.ArgumentParser(
        description="Exact read occurrence search (both strands) with per-genome coverage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Suffix array search, results in the plain text format
  readcov genomes.fa reads.fq -o hits.txt

  # Naive scan, BED output and a bedGraph coverage track
  readcov genomes.fa reads.fq --engine naive -o hits.bed --format bed -c coverage.bedgraph
        """
    )
    parser.add_argument("genomes", help="Genome FASTA file")
    parser.add_argument("reads", help="Reads FASTQ file")
    parser.add_argument("-e", "--engine", choices=sorted(ENGINES), default=SuffixArraySearchEngine.name,
                        help=f"Search engine (default: {SuffixArraySearchEngine.name})")
    parser.add_argument("-o", "--output", help="Occurrence results file")
    parser.add_argument("--format", dest="output_format", choices=["text", "bed"], default="text",
                        help="Results format (default: text)")
    parser.add_argument("-c", "--coverage", help="Coverage bedGraph file")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only report errors")

    args = parser.parse_args(argv)
    return SearchConfig(
        genomes=args.genomes,
        reads=args.reads,
        engine=args.engine,
        output=args.output,
        output_format=args.output_format,
        coverage=args.coverage,
        show_progress=not args.quiet,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    config = parse_args(argv)

    if config.show_progress:
        print(f"Exact Read Coverage Search")
        print(f"{'=' * 60}")
        print(f"Genomes:      {config.genomes}")
        print(f"Reads:        {config.reads}")
        print(f"Engine:       {config.engine}")
        print(f"Output:       {config.output or '-'} ({config.output_format} format)")
        print(f"Coverage:     {config.coverage or '-'}")
        print()

    try:
        records, profiles = run_search(config)
    except (ReadCoverageError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if config.show_progress:
        n_occurrences = sum(len(r.positions) for r in records)
        print(f"\n{'=' * 60}")
        print(f"Completed! {len(records)} record(s), {n_occurrences} occurrence(s).")
        for profile in profiles:
            print(f"  {profile.genome_id}: mean depth {profile.mean_depth:.2f}, "
                  f"max {profile.max_depth}, breadth {100 * profile.breadth:.1f}%")
    return 0


if __name__ == "__main__":
    sys.exit(main())
