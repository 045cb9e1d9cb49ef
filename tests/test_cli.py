"""
CsvQL CLI Tests
===============
Tests for Session, Renderer, REPL meta-commands, statement splitting,
and the command-line entry point (exit codes, -e / -f script mode).
"""

import contextlib
import io
import os
import shutil
import tempfile
import unittest
from unittest import mock

from cli.session import Session, SessionError
from cli.renderer import Renderer
from cli.repl import REPL, split_statements, find_semicolon_outside_quotes
from execution.expression_evaluator import SqlTypeError
from parser import ParseError
from planning.planner import PlanError
from storage.csv_source import CsvSourceError
from storage.types import NullOrder

import main as cli_main

CSV_TEXT = "id,label\n1,a\n2,b\n2,c\n3,d\n"


class SessionTestBase(unittest.TestCase):
    """Base with temp directory holding t.csv for Session tests."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="csvql_cli_test_")
        self.csv_path = os.path.join(self.test_dir, "t.csv")
        with open(self.csv_path, "w", encoding="utf-8") as f:
            f.write(CSV_TEXT)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def open_session(self, **kwargs):
        kwargs.setdefault("output_dir", self.test_dir)
        return Session(self.csv_path, **kwargs)


# ═══════════════════════════════════════════════════════════════════════════
# Session Lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestSessionLifecycle(SessionTestBase):

    def test_open_close(self):
        """Session opens and closes cleanly."""
        session = self.open_session()
        self.assertFalse(session._closed)
        session.close()
        self.assertTrue(session._closed)

    def test_context_manager(self):
        """Session works as context manager."""
        with self.open_session() as session:
            self.assertFalse(session._closed)
        self.assertTrue(session._closed)

    def test_double_close_safe(self):
        """Closing an already-closed session is a no-op."""
        session = self.open_session()
        session.close()
        session.close()
        self.assertTrue(session._closed)

    def test_closed_session_error(self):
        """Statements on a closed session raise SessionError."""
        session = self.open_session()
        session.close()
        with self.assertRaises(SessionError):
            session.execute("SELECT 1")

    def test_table_name_from_file(self):
        with self.open_session() as session:
            self.assertEqual(session.source.table_name, "t")


# ═══════════════════════════════════════════════════════════════════════════
# Session Execution
# ═══════════════════════════════════════════════════════════════════════════

class TestSessionExecution(SessionTestBase):

    def test_select(self):
        with self.open_session() as session:
            rows, msg, cols = session.execute(
                "SELECT id, COUNT(*) FROM t GROUP BY id HAVING COUNT(*) > 1 ORDER BY id")
            self.assertEqual(cols, ["id", "COUNT(*)"])
            self.assertEqual(msg, "")
            self.assertEqual(list(rows), [(2, 2)])

    def test_select_without_file(self):
        with Session() as session:
            rows, _, cols = session.execute("SELECT 1 + 1 AS two")
            self.assertEqual(cols, ["two"])
            self.assertEqual(list(rows), [(2,)])

    def test_explain_returns_text(self):
        with self.open_session() as session:
            rows, msg, cols = session.execute("EXPLAIN SELECT label FROM t WHERE id > 1")
            self.assertIsNone(rows)
            self.assertIsNone(cols)
            self.assertIn("FilterExec (predicate=id > 1)", msg)
            self.assertIn("SeqScanExec", msg)

    def test_explain_plan_helper(self):
        with self.open_session() as session:
            self.assertIn("LimitExec (count=2)", session.explain_plan("SELECT id FROM t LIMIT 2"))
            self.assertIsNone(session.explain_plan("COPY t TO 'x.csv'"))

    def test_copy_message(self):
        with self.open_session() as session:
            rows, msg, cols = session.execute("COPY (SELECT label FROM t WHERE id = 2) TO 'out.csv'")
            self.assertIsNone(rows)
            self.assertEqual(msg, "COPY 2")
            with open(os.path.join(self.test_dir, "out.csv"), encoding="utf-8") as f:
                self.assertEqual(f.read(), "label\nb\nc\n")

    def test_errors_propagate(self):
        with self.open_session() as session:
            with self.assertRaises(ParseError):
                session.execute("SELECT FROM")
            with self.assertRaises(PlanError):
                session.execute("SELECT nope FROM t")
            with self.assertRaises(SqlTypeError):
                session.execute("SELECT label * 2 FROM t")

    def test_stats_tracking(self):
        with self.open_session() as session:
            rows, _, _ = session.execute("SELECT * FROM t")
            list(rows)
            with self.assertRaises(PlanError):
                session.execute("SELECT nope FROM t")
            self.assertEqual(session.stats["statements_executed"], 2)
            self.assertEqual(session.stats["statements_failed"], 1)
            self.assertEqual(session.stats["rows_returned"], 4)

    def test_describe(self):
        with self.open_session() as session:
            text = session.describe()
            self.assertIn("Table 't' (t.csv)", text)
            self.assertIn("id: INTEGER", text)
            self.assertIn("label: TEXT", text)

    def test_describe_without_file(self):
        with Session() as session:
            self.assertEqual(session.describe(), "No CSV file loaded.")

    def test_null_order_setting(self):
        with self.open_session() as session:
            self.assertEqual(session.set_null_order("FIRST"), "NULL ordering: first")
            self.assertEqual(session.context.null_order, NullOrder.FIRST)
            with self.assertRaises(SessionError):
                session.set_null_order("middle")

    def test_closing_stream_stops_scan(self):
        with self.open_session() as session:
            rows, _, _ = session.execute("SELECT * FROM t")
            self.assertEqual(next(rows), (1, "a"))
            rows.close()
            with self.assertRaises(StopIteration):
                next(rows)
            self.assertEqual(session.stats["rows_returned"], 1)


# ═══════════════════════════════════════════════════════════════════════════
# Renderer
# ═══════════════════════════════════════════════════════════════════════════

class TestRenderer(unittest.TestCase):

    def make(self, **settings):
        buf = io.StringIO()
        renderer = Renderer(buf)
        renderer.show_timer = False
        for key, value in settings.items():
            setattr(renderer, key, value)
        return renderer, buf

    def test_table_mode_basic(self):
        renderer, buf = self.make()
        count = renderer.render_rows(iter([(1, "a"), (22, "bb")]), ["id", "label"])
        self.assertEqual(count, 2)
        self.assertEqual(buf.getvalue(), (
            "+----+-------+\n"
            "| id | label |\n"
            "+----+-------+\n"
            "|  1 | a     |\n"
            "| 22 | bb    |\n"
            "+----+-------+\n"
            "\n2 row(s) returned\n"
        ))

    def test_null_display(self):
        renderer, buf = self.make()
        renderer.render_rows(iter([(None, True)]), ["a", "b"])
        self.assertIn("NULL", buf.getvalue())
        self.assertIn("true", buf.getvalue())

    def test_float_display(self):
        renderer, buf = self.make(mode="raw")
        renderer.render_rows(iter([(2.0, 1.25)]), ["a", "b"])
        self.assertIn("2.0|1.25", buf.getvalue())

    def test_vertical_mode(self):
        renderer, buf = self.make(mode="vertical")
        renderer.render_rows(iter([(1, "a")]), ["id", "label"])
        output = buf.getvalue()
        self.assertIn("*** Row 1 ***", output)
        self.assertIn("     id: 1", output)
        self.assertIn("  label: a", output)

    def test_raw_mode(self):
        renderer, buf = self.make(mode="raw")
        renderer.render_rows(iter([(1, None)]), ["id", "label"])
        self.assertTrue(buf.getvalue().startswith("id|label\n1|NULL\n"))

    def test_csv_mode(self):
        renderer, buf = self.make(mode="csv")
        renderer.render_rows(iter([(1, "a,b"), (2, None)]), ["id", "label"])
        self.assertEqual(buf.getvalue(), 'id,label\n1,"a,b"\n2,\n')

    def test_display_limit(self):
        renderer, buf = self.make(display_limit=2)
        count = renderer.render_rows(iter([(i,) for i in range(5)]), ["n"])
        self.assertEqual(count, 2)
        self.assertIn("display limit 2 reached", buf.getvalue())

    def test_display_limit_not_reached(self):
        renderer, buf = self.make(display_limit=5)
        renderer.render_rows(iter([(1,), (2,)]), ["n"])
        self.assertNotIn("display limit", buf.getvalue())

    def test_streaming_large_result(self):
        renderer, buf = self.make()
        count = renderer.render_rows(iter([(i,) for i in range(250)]), ["n"])
        self.assertEqual(count, 250)
        self.assertIn("250 row(s) returned", buf.getvalue())

    def test_headers_off(self):
        renderer, buf = self.make(show_headers=False)
        renderer.render_rows(iter([(1,)]), ["id"])
        self.assertNotIn("id", buf.getvalue())
        self.assertNotIn("+", buf.getvalue())

    def test_error_classification(self):
        cases = [
            (ParseError("bad", 1, 1), "SyntaxError: bad at line 1:1"),
            (PlanError("no column"), "PlanError: no column"),
            (SqlTypeError("mismatch"), "TypeError: mismatch"),
            (CsvSourceError("broken"), "IOError: broken"),
            (SessionError("closed"), "SessionError: closed"),
            (ValueError("oops"), "ExecutionError: oops"),
            (LookupError("other"), "Error[LookupError]: other"),
        ]
        for error, expected in cases:
            renderer, buf = self.make()
            renderer.render_error(error)
            self.assertEqual(buf.getvalue().strip(), expected)

    def test_plan_block(self):
        renderer, buf = self.make()
        renderer.render_plan("LimitExec (count=1)")
        self.assertEqual(buf.getvalue(), "=== Execution Plan ===\nLimitExec (count=1)\n")


# ═══════════════════════════════════════════════════════════════════════════
# Statement Splitting
# ═══════════════════════════════════════════════════════════════════════════

class TestStatementSplitting(unittest.TestCase):

    def test_split(self):
        self.assertEqual(split_statements("SELECT 1; SELECT 2;"), ["SELECT 1", "SELECT 2"])

    def test_trailing_statement_kept(self):
        self.assertEqual(split_statements("SELECT 1; SELECT 2"), ["SELECT 1", "SELECT 2"])

    def test_semicolon_in_quotes(self):
        sql = "SELECT 'a;b' FROM t; SELECT \"x;y\" FROM t"
        self.assertEqual(split_statements(sql), ["SELECT 'a;b' FROM t", 'SELECT "x;y" FROM t'])

    def test_doubled_quote_escape(self):
        self.assertEqual(find_semicolon_outside_quotes("SELECT 'it''s;' ;"), 16)

    def test_no_semicolon(self):
        self.assertEqual(find_semicolon_outside_quotes("SELECT 1"), -1)


# ═══════════════════════════════════════════════════════════════════════════
# REPL
# ═══════════════════════════════════════════════════════════════════════════

class TestREPL(SessionTestBase):

    def setUp(self):
        super().setUp()
        self.buf = io.StringIO()
        self.renderer = Renderer(self.buf)
        self.renderer.show_timer = False
        self.session = self.open_session()
        self.repl = REPL(self.session, self.renderer)

    def tearDown(self):
        self.session.close()
        super().tearDown()

    def meta(self, line):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            self.repl.handle_meta_command(line)
        return out.getvalue()

    def test_execute_statement_success(self):
        self.assertTrue(self.repl.execute_statement("SELECT label FROM t WHERE id > 1 ORDER BY label LIMIT 1"))
        self.assertIn("| b     |", self.buf.getvalue())
        self.assertIn("1 row(s) returned", self.buf.getvalue())

    def test_execute_statement_error(self):
        self.assertFalse(self.repl.execute_statement("SELECT nope FROM t"))
        self.assertIn("PlanError: Column 'nope' does not exist", self.buf.getvalue())

    def test_interrupt_during_render(self):
        with mock.patch.object(self.renderer, "render_rows", side_effect=KeyboardInterrupt):
            out = io.StringIO()
            with contextlib.redirect_stdout(out):
                self.assertFalse(self.repl.execute_statement("SELECT * FROM t"))
        self.assertIn("Query interrupted.", out.getvalue())
        self.assertEqual(self.session.stats["statements_failed"], 0)

    def test_copy_message_rendered(self):
        self.assertTrue(self.repl.execute_statement("COPY t TO 'all.csv'"))
        self.assertIn("COPY 4", self.buf.getvalue())

    def test_show_plan_after_result(self):
        self.repl.show_plan = True
        self.repl.execute_statement("SELECT id FROM t LIMIT 1")
        self.assertIn("=== Execution Plan ===", self.buf.getvalue())
        self.assertIn("LimitExec (count=1)", self.buf.getvalue())

    def test_schema_commands(self):
        self.assertIn("id: INTEGER", self.meta(".schema"))
        self.assertIn("label: TEXT", self.meta("schema"))

    def test_mode_command(self):
        self.assertIn("Output mode: csv", self.meta(".mode csv"))
        self.assertEqual(self.renderer.mode, "csv")
        self.assertIn("Usage", self.meta(".mode fancy"))
        self.assertEqual(self.renderer.mode, "csv")

    def test_timer_headers_limit(self):
        self.meta(".timer on")
        self.assertTrue(self.renderer.show_timer)
        self.meta(".headers off")
        self.assertFalse(self.renderer.show_headers)
        self.meta(".limit 5")
        self.assertEqual(self.renderer.display_limit, 5)
        self.meta(".limit off")
        self.assertIsNone(self.renderer.display_limit)

    def test_nulls_command(self):
        self.assertIn("NULL ordering: first", self.meta(".nulls first"))
        self.assertEqual(self.session.context.null_order, NullOrder.FIRST)
        self.assertIn("NULL ordering: first", self.meta(".nulls"))
        self.meta(".nulls sideways")
        self.assertIn("SessionError", self.buf.getvalue())

    def test_plan_command(self):
        self.assertIn("ON", self.meta(".plan on"))
        self.assertTrue(self.repl.show_plan)
        self.assertIn("OFF", self.meta(".plan off"))

    def test_stats_command(self):
        self.repl.execute_statement("SELECT * FROM t")
        self.repl.execute_statement("SELECT nope FROM t")
        output = self.meta(".stats")
        self.assertIn("Statements executed: 2", output)
        self.assertIn("Statements failed:   1", output)
        self.assertIn("Rows returned:       4", output)

    def test_quit_commands(self):
        for line in (".quit", ".exit", ".q", "quit", "exit;"):
            self.repl._running = True
            self.meta(line)
            self.assertFalse(self.repl._running)

    def test_unknown_command(self):
        self.assertIn("Unknown command: .frobnicate", self.meta(".frobnicate"))

    def test_help(self):
        self.assertIn(".nulls first|last", self.meta(".help"))

    @mock.patch("cli.repl._save_history")
    @mock.patch("cli.repl._load_history")
    def test_run_loop(self, _load, _save):
        lines = ["SELECT label FROM t", "WHERE id = 3;", ".quit"]
        out = io.StringIO()
        with mock.patch("builtins.input", side_effect=lines), contextlib.redirect_stdout(out):
            self.repl.run()
        self.assertIn("| d     |", self.buf.getvalue())
        self.assertIn("Goodbye.", out.getvalue())
        self.assertTrue(self.session._closed)

    @mock.patch("cli.repl._save_history")
    @mock.patch("cli.repl._load_history")
    def test_run_loop_eof(self, _load, _save):
        out = io.StringIO()
        with mock.patch("builtins.input", side_effect=EOFError), contextlib.redirect_stdout(out):
            self.repl.run()
        self.assertIn("Table: t (t.csv)", out.getvalue())
        self.assertTrue(self.session._closed)


# ═══════════════════════════════════════════════════════════════════════════
# Entry Point
# ═══════════════════════════════════════════════════════════════════════════

class TestMain(SessionTestBase):

    def run_main(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = cli_main.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_execute_success(self):
        code, out, _ = self.run_main(self.csv_path, "-e", "SELECT COUNT(*) FROM t")
        self.assertEqual(code, 0)
        self.assertIn("4", out)
        self.assertIn("1 row(s) returned", out)

    def test_csv_mode_output(self):
        code, out, _ = self.run_main(self.csv_path, "--mode", "csv", "-e",
                                     "SELECT id, label FROM t WHERE id = 1")
        self.assertEqual(code, 0)
        self.assertEqual(out, "id,label\n1,a\n")

    def test_plan_error_exit_code(self):
        code, out, err = self.run_main(self.csv_path, "-e", "SELECT nope FROM t")
        self.assertEqual(code, 1)
        self.assertIn("PlanError", out)
        self.assertIn("Error in statement", err)

    def test_type_error_exit_code(self):
        code, out, _ = self.run_main(self.csv_path, "-e", "SELECT label + 1 FROM t")
        self.assertEqual(code, 1)
        self.assertIn("TypeError", out)

    def test_explain_exit_code(self):
        code, out, _ = self.run_main(self.csv_path, "-e", "EXPLAIN SELECT id FROM t")
        self.assertEqual(code, 0)
        self.assertIn("SeqScanExec", out)

    def test_stops_at_first_error(self):
        code, out, _ = self.run_main(self.csv_path, "--mode", "raw", "-e",
                                     "SELECT 1 AS a; SELECT nope FROM t; SELECT 2 AS b")
        self.assertEqual(code, 1)
        self.assertIn("a\n1", out)
        self.assertNotIn("b\n2", out)

    def test_missing_csv(self):
        code, _, err = self.run_main(os.path.join(self.test_dir, "missing.csv"), "-e", "SELECT 1")
        self.assertEqual(code, 1)
        self.assertIn("CSV file not found", err)

    def test_malformed_csv(self):
        bad = os.path.join(self.test_dir, "bad.csv")
        with open(bad, "w", encoding="utf-8") as f:
            f.write("a,b\n1\n")
        code, _, err = self.run_main(bad, "-e", "SELECT * FROM bad")
        self.assertEqual(code, 1)
        self.assertIn("expected 2 fields", err)

    def test_script_file(self):
        script = os.path.join(self.test_dir, "script.sql")
        with open(script, "w", encoding="utf-8") as f:
            f.write("-- totals\nSELECT SUM(id) AS total FROM t;\n.mode csv;\n"
                    "COPY (SELECT id FROM t WHERE id > 2) TO 'big.csv';\n-- done\n")
        code, out, err = self.run_main(self.csv_path, "--output-dir", self.test_dir, "-f", script)
        self.assertEqual(code, 0)
        self.assertIn("8", out)
        self.assertIn("COPY 1", out)
        self.assertIn("meta-command not supported", err)
        with open(os.path.join(self.test_dir, "big.csv"), encoding="utf-8") as f:
            self.assertEqual(f.read(), "id\n3\n")

    def test_missing_script(self):
        code, _, err = self.run_main(self.csv_path, "-f", os.path.join(self.test_dir, "none.sql"))
        self.assertEqual(code, 1)
        self.assertIn("cannot read script file", err)

    def test_tab_delimiter(self):
        tsv = os.path.join(self.test_dir, "data.tsv")
        with open(tsv, "w", encoding="utf-8") as f:
            f.write("id\tname\n1\tx\n")
        code, out, _ = self.run_main(tsv, "-d", "\\t", "--mode", "csv", "-e", "SELECT name FROM data")
        self.assertEqual(code, 0)
        self.assertEqual(out, "name\nx\n")

    def test_nulls_flag(self):
        data = os.path.join(self.test_dir, "n.csv")
        with open(data, "w", encoding="utf-8") as f:
            f.write("k,v\na,2\nb,\nc,1\n")
        code, out, _ = self.run_main(data, "--nulls", "first", "--mode", "csv",
                                     "-e", "SELECT k FROM n ORDER BY v")
        self.assertEqual(code, 0)
        self.assertEqual(out, "k\nb\nc\na\n")


if __name__ == "__main__":
    unittest.main()
