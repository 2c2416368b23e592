import contextlib
import io
import os
import tempfile
import unittest

from readcov import main, parse_args


class CommandLineTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.genomes = os.path.join(self.tmp, "genomes.fa")
        self.reads = os.path.join(self.tmp, "reads.fq")
        with open(self.genomes, 'w') as f:
            f.write(">g1\nACGTACGT\n>g2\nAAAA\n")
        with open(self.reads, 'w') as f:
            f.write("@r1\nACGT\n+\nIIII\n@r2\nAA\n+\nII\n")

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults(self):
        config = parse_args([self.genomes, self.reads])
        self.assertEqual(config.engine, "suffix-array")
        self.assertEqual(config.output_format, "text")
        self.assertIsNone(config.output)
        self.assertTrue(config.show_progress)

    def test_quiet_run_writes_outputs(self):
        for engine in ("suffix-array", "naive"):
            output = os.path.join(self.tmp, f"hits-{engine}.txt")
            coverage = os.path.join(self.tmp, f"cov-{engine}.bedgraph")
            stdout = io.StringIO()
            with contextlib.redirect_stdout(stdout):
                code = main([self.genomes, self.reads, "-q", "-e", engine, "-o", output, "-c", coverage])
            self.assertEqual(code, 0)
            self.assertEqual(stdout.getvalue(), "")
            with open(output) as f:
                self.assertEqual(f.read().splitlines(), [
                    "r1 4 forward g1 0 4",
                    "r1 4 reverse g1 0 4",
                    "r2 2 forward g2 0 1 2",
                ])
            with open(coverage) as f:
                lines = f.read().splitlines()
            self.assertIn("g1\t0\t8\t2", lines)
            self.assertIn("g2\t1\t3\t2", lines)

    def test_progress_output(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            code = main([self.genomes, self.reads])
        self.assertEqual(code, 0)
        self.assertIn("Completed!", stdout.getvalue())
        self.assertIn("g2: mean depth 1.50", stdout.getvalue())

    def test_missing_input_reports_error(self):
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = main([os.path.join(self.tmp, "nope.fa"), self.reads, "-q"])
        self.assertEqual(code, 1)
        self.assertIn("ERROR", stderr.getvalue())

    def test_invalid_read_reports_error(self):
        with open(self.reads, 'w') as f:
            f.write("@r1\nACNT\n+\nIIII\n")
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = main([self.genomes, self.reads, "-q"])
        self.assertEqual(code, 1)
        self.assertIn("only A, C, G and T", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
