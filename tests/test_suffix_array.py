import random
import unittest

from readcov import EmptyInputError, IndexOutOfRangeError, SuffixArray


def brute_force_order(text):
    return sorted(range(len(text)), key=lambda i: text[i:])


def brute_force_lcp(a, b):
    n = 0
    while n < len(a) and n < len(b) and a[n] == b[n]:
        n += 1
    return n


class SuffixArrayConstructionTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        rng = random.Random(2024)
        cls.texts = [
            "A",
            "ACGTACGT",
            "GATTACA",
            "A" * 200,
            "AC" * 120,
            "ACGTTGCA" * 30 + "A",
            "".join(rng.choice("ACGT") for _ in range(500)),
            "".join(rng.choice("AC") for _ in range(300)),
        ]
        cls.arrays = [SuffixArray(t) for t in cls.texts]

    def test_matches_brute_force_order(self):
        for text, sa in zip(self.texts, self.arrays):
            order = [sa.index(i) for i in range(len(sa))]
            self.assertEqual(order, brute_force_order(text), msg=text[:30])

    def test_suffixes_are_non_decreasing(self):
        for sa in self.arrays:
            for i in range(1, len(sa)):
                self.assertGreaterEqual(sa.select(i), sa.select(i - 1))

    def test_select_round_trip(self):
        for sa in self.arrays:
            for i in range(len(sa)):
                self.assertEqual(sa.compare(sa.select(i), sa.index(i)), 0)

    def test_adjacent_lcp(self):
        for text, sa in zip(self.texts, self.arrays):
            for i in range(1, len(sa)):
                expected = brute_force_lcp(text[sa.index(i):], text[sa.index(i - 1):])
                self.assertEqual(sa.lcp(i), expected)
                self.assertEqual(sa.lcp(i), sa.lcp_between(sa.index(i), sa.index(i - 1)))

    def test_repetitive_text_shorter_suffix_first(self):
        sa = SuffixArray("AAAA")
        self.assertEqual([sa.index(i) for i in range(4)], [3, 2, 1, 0])

    def test_sentinel_is_appended(self):
        sa = SuffixArray("ACGT")
        self.assertEqual(len(sa), 4)
        self.assertEqual(sa.text_arr.size, 5)
        self.assertEqual(int(sa.text_arr[-1]), 0)

    def test_empty_text(self):
        with self.assertRaises(EmptyInputError):
            SuffixArray("")


class SuffixArrayQueryTests(unittest.TestCase):
    def setUp(self):
        self.sa = SuffixArray("ACGTACGT")

    def test_compare_mismatch_returns_code_difference(self):
        self.assertEqual(self.sa.compare("AG", 0), ord("G") - ord("C"))
        self.assertEqual(self.sa.compare("AA", 0), ord("A") - ord("C"))

    def test_compare_query_prefix_ranks_less(self):
        self.assertEqual(self.sa.compare("ACG", 0), -1)

    def test_compare_suffix_ends_first_ranks_greater(self):
        self.assertEqual(self.sa.compare("CGTA", 5), 1)

    def test_compare_equal(self):
        self.assertEqual(self.sa.compare("ACGT", 4), 0)

    def test_compare_with_start_offset(self):
        self.assertEqual(self.sa.compare("ACGA", 0, start=3), ord("A") - ord("T"))

    def test_lcp_with_query(self):
        self.assertEqual(self.sa.lcp_with("ACGA", 0), 3)
        self.assertEqual(self.sa.lcp_with("ACGTACGTAA", 0), 8)
        self.assertEqual(self.sa.lcp_with("T", 0), 0)
        self.assertEqual(self.sa.lcp_with("ACGA", 0, start=2), 3)

    def test_lcp_between_excludes_sentinel(self):
        self.assertEqual(self.sa.lcp_between(0, 4), 4)
        self.assertEqual(self.sa.lcp_between(7, 7), 1)

    def test_positions_are_text_ordered(self):
        self.assertEqual(self.sa.positions(0, len(self.sa) - 1), list(range(8)))

    def test_out_of_range(self):
        n = len(self.sa)
        for call in (lambda: self.sa.index(-1), lambda: self.sa.index(n),
                     lambda: self.sa.lcp(0), lambda: self.sa.lcp(n),
                     lambda: self.sa.select(n)):
            with self.assertRaises(IndexOutOfRangeError):
                call()

    def test_out_of_range_is_an_index_error(self):
        with self.assertRaises(IndexError):
            self.sa.index(100)


if __name__ == "__main__":
    unittest.main()
