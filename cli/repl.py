"""
CsvQL Interactive REPL
======================
Interactive command-line shell with csvql> prompt.

Features:
  - Multi-line SQL with ; terminator
  - Meta-commands (dot-prefixed, no ; needed); bare `schema`, `quit`
    and `exit` work too
  - Ctrl+C: discard current input OR stop a running query
  - Ctrl+D/EOF: exit
  - Persistent readline history (~/.csvql_history)
  - Error classification and display
"""

import logging
import os
from typing import List, Optional

from cli.session import Session, SessionError
from cli.renderer import Renderer, MODES

logger = logging.getLogger(__name__)


# ─── History ────────────────────────────────────────────────────────
HISTORY_FILE = os.path.expanduser("~/.csvql_history")
HISTORY_MAX = 1000

try:
    import readline
    _HAS_READLINE = True
except ImportError:
    try:
        import pyreadline3 as readline
        _HAS_READLINE = True
    except ImportError:
        _HAS_READLINE = False


def _load_history():
    if _HAS_READLINE and os.path.exists(HISTORY_FILE):
        try:
            readline.read_history_file(HISTORY_FILE)
        except OSError as e:
            logger.debug("Could not read history file %s: %s", HISTORY_FILE, e)


def _save_history():
    if _HAS_READLINE:
        try:
            readline.set_history_length(HISTORY_MAX)
            readline.write_history_file(HISTORY_FILE)
        except OSError as e:
            logger.debug("Could not write history file %s: %s", HISTORY_FILE, e)


# ─── Statement Splitting ────────────────────────────────────────────

def find_semicolon_outside_quotes(sql: str) -> int:
    """Find the first ; that isn't inside single or double quotes."""
    quote = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if quote is None:
            if ch in ("'", '"'):
                quote = ch
            elif ch == ";":
                return i
        elif ch == quote:
            # Doubled quote is an escape
            if i + 1 < len(sql) and sql[i + 1] == quote:
                i += 1
            else:
                quote = None
        i += 1
    return -1


def split_statements(sql: str) -> List[str]:
    """Split script text on ; outside quotes. A trailing statement without ; is kept."""
    statements = []
    rest = sql
    while True:
        idx = find_semicolon_outside_quotes(rest)
        if idx == -1:
            break
        statement = rest[:idx].strip()
        if statement:
            statements.append(statement)
        rest = rest[idx + 1:]
    if rest.strip():
        statements.append(rest.strip())
    return statements


# ─── REPL ───────────────────────────────────────────────────────────

class REPL:
    """
    Interactive CsvQL shell.

    Usage:
        repl = REPL(Session("data/test.csv"))
        repl.run()
    """

    PROMPT = "csvql> "
    CONTINUATION = "  ...> "

    def __init__(self, session: Session, renderer: Optional[Renderer] = None,
                 show_plan: bool = False):
        self.session = session
        self.renderer = renderer or Renderer()
        self.show_plan = show_plan
        self._running = False

    def run(self):
        """Main REPL loop."""
        _load_history()
        self._running = True

        print("CsvQL v0.1.0")
        if self.session.source is not None:
            print(f"Table: {self.session.source.table_name} ({self.session.source.file_name})")
        print('Type ".help" for usage hints.')
        print()

        sql_buffer = ""

        try:
            while self._running:
                prompt = self.CONTINUATION if sql_buffer else self.PROMPT

                try:
                    line = input(prompt)
                except KeyboardInterrupt:
                    # Ctrl+C: cancel current input
                    print()
                    sql_buffer = ""
                    continue
                except EOFError:
                    # Ctrl+D: exit
                    print()
                    break

                # Empty line
                stripped = line.strip()
                if not stripped:
                    if sql_buffer:
                        sql_buffer += "\n"
                    continue

                # Meta-commands (no ; needed)
                if not sql_buffer and self._is_meta_command(stripped):
                    self.handle_meta_command(stripped)
                    continue

                # Accumulate SQL
                sql_buffer += "\n" + line if sql_buffer else line

                # Run every complete statement in the buffer
                while True:
                    idx = find_semicolon_outside_quotes(sql_buffer)
                    if idx == -1:
                        break
                    statement = sql_buffer[:idx].strip()
                    sql_buffer = sql_buffer[idx + 1:].strip()

                    if statement:
                        self.execute_statement(statement)

        finally:
            _save_history()
            self._shutdown()

    # ─── Statement Execution ────────────────────────────────────────

    def execute_statement(self, sql: str) -> bool:
        """Execute a single SQL statement with error handling. Returns True on success."""
        try:
            rows, message, col_names = self.session.execute(sql)

            if rows is not None:
                # SELECT: stream results
                try:
                    self.renderer.render_rows(rows, col_names)
                except KeyboardInterrupt:
                    rows.close()
                    print("\nQuery interrupted.")
                    return False
                if self.show_plan:
                    self.renderer.render_plan(self.session.explain_plan(sql))
            elif message:
                self.renderer.render_message(message)
            return True

        except KeyboardInterrupt:
            print("\nQuery interrupted.")
            return False
        except Exception as e:
            self.renderer.render_error(e)
            return False

    # ─── Meta-Commands ──────────────────────────────────────────────

    _BARE_COMMANDS = {"schema": ".schema", "quit": ".quit", "exit": ".quit"}

    def _is_meta_command(self, line: str) -> bool:
        word = line.rstrip(";").strip().lower()
        return line.startswith(".") or word in self._BARE_COMMANDS

    def handle_meta_command(self, line: str):
        """Handle dot-prefixed meta-commands."""
        line = line.rstrip(";").strip()
        parts = line.split(None, 1)
        cmd = parts[0].lower()
        cmd = self._BARE_COMMANDS.get(cmd, cmd)
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd in (".quit", ".exit", ".q"):
            self._running = False
        elif cmd == ".help":
            self._cmd_help()
        elif cmd == ".schema":
            self._cmd_schema()
        elif cmd == ".mode":
            self._cmd_mode(arg)
        elif cmd == ".timer":
            self._cmd_timer(arg)
        elif cmd == ".headers":
            self._cmd_headers(arg)
        elif cmd == ".limit":
            self._cmd_limit(arg)
        elif cmd == ".nulls":
            self._cmd_nulls(arg)
        elif cmd == ".plan":
            self._cmd_plan(arg)
        elif cmd == ".stats":
            self._cmd_stats()
        else:
            print(f"Unknown command: {cmd}. Type .help for available commands.")

    def _cmd_help(self):
        print(f"""CsvQL Commands:
  .help                Show this help
  .schema              Show the table name and column types (alias: schema)
  .mode {'|'.join(MODES)}  Set output mode (default: table)
  .timer on|off        Toggle query timing display
  .headers on|off      Toggle column headers
  .limit N|off         Set display row limit
  .nulls first|last    Where NULL sorts in ascending order
  .plan on|off         Print the execution plan after each query
  .stats               Show session statistics
  .quit                Exit (aliases: .exit, .q, quit, exit)

SQL:
  SELECT ... FROM <table> [WHERE] [GROUP BY] [HAVING] [ORDER BY] [LIMIT]
  EXPLAIN [LOGICAL|PHYSICAL] <SELECT>   Show query plan
  COPY (<SELECT>) TO 'out.csv'          Write a result as CSV

Tips:
  - Statements end with ;
  - Multi-line input supported (continue until ;)
  - Ctrl+C discards current input or stops a running query
  - Ctrl+D exits the shell""")

    def _cmd_schema(self):
        try:
            print(self.session.describe())
        except Exception as e:
            self.renderer.render_error(e)

    def _cmd_mode(self, arg: str):
        if arg.lower() in MODES:
            self.renderer.mode = arg.lower()
            print(f"Output mode: {arg.lower()}")
        else:
            print(f"Usage: .mode {{{' | '.join(MODES)}}}")
            print(f"Current: {self.renderer.mode}")

    def _cmd_timer(self, arg: str):
        if arg.lower() in ("on", "1", "true"):
            self.renderer.show_timer = True
            print("Timer ON")
        elif arg.lower() in ("off", "0", "false"):
            self.renderer.show_timer = False
            print("Timer OFF")
        else:
            print(f"Timer is {'ON' if self.renderer.show_timer else 'OFF'}")

    def _cmd_headers(self, arg: str):
        if arg.lower() in ("on", "1", "true"):
            self.renderer.show_headers = True
            print("Headers ON")
        elif arg.lower() in ("off", "0", "false"):
            self.renderer.show_headers = False
            print("Headers OFF")
        else:
            print(f"Headers are {'ON' if self.renderer.show_headers else 'OFF'}")

    def _cmd_limit(self, arg: str):
        if arg.lower() in ("off", "none", "0"):
            self.renderer.display_limit = None
            print("Display limit OFF")
        elif arg.isdigit() and int(arg) > 0:
            self.renderer.display_limit = int(arg)
            print(f"Display limit: {arg} rows")
        else:
            current = self.renderer.display_limit or "OFF"
            print("Usage: .limit N | .limit off")
            print(f"Current: {current}")

    def _cmd_nulls(self, arg: str):
        if not arg:
            print(f"NULL ordering: {self.session.context.null_order.value}")
            return
        try:
            print(self.session.set_null_order(arg))
        except SessionError as e:
            self.renderer.render_error(e)

    def _cmd_plan(self, arg: str):
        if arg.lower() in ("on", "1", "true"):
            self.show_plan = True
        elif arg.lower() in ("off", "0", "false"):
            self.show_plan = False
        print(f"Execution plan display is {'ON' if self.show_plan else 'OFF'}")

    def _cmd_stats(self):
        s = self.session.stats
        print("Session Statistics:")
        print(f"  Statements executed: {s['statements_executed']}")
        print(f"  Statements failed:   {s['statements_failed']}")
        print(f"  Rows returned:       {s['rows_returned']}")
        print(f"  NULL ordering:       {self.session.context.null_order.value}")

    # ─── Helpers ────────────────────────────────────────────────────

    def _shutdown(self):
        """Clean shutdown: close session."""
        self.session.close()
        print("Goodbye.")
