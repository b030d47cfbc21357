# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
serve
    - Starts the APScheduler service loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

run MODULE [--kwargs k=v ...] [--print-meta]
    - Executes a module ad-hoc via runner.run_module_once(...)
    - Displays a concise success/failure summary

harvest [--runs N] [--sqlite-path P] [--industries A,B] [--no-details] [--print-meta]
    - Shortcut for `run modules.job_harvest` with the common knobs as flags

list-jobs
    - Loads config via config_schema.load_config() and prints configured jobs

validate-config
    - Loads/validates config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from service import logging_utils as L
from service import runner as _runner
from service import scheduler as _scheduler

try:
    from service import config_schema as _config_schema
except ImportError as e:  # pragma: no cover
    _config_schema = None  # type: ignore
    _CONF_IMPORT_ERR = e
else:
    _CONF_IMPORT_ERR = None


LOG = logging.getLogger("service.cli")

HARVEST_MODULE = "modules.job_harvest"


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(threadName)s] [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("ID", "DETAILS")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


def _extract_jobs_from_config(cfg: dict[str, Any]) -> list[tuple[str, str]]:
    out = []
    for idx, j in enumerate(cfg.get("jobs") or []):
        jid = str(j.get("id") or j.get("name") or idx)
        desc = j.get("summary") or j.get("description") or json.dumps(j.get("trigger"), default=str)
        out.append((jid, f"{j.get('module')}: {desc}"))
    return out


def _now_iso():
    return datetime.now().astimezone().isoformat()


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    if _config_schema is None:
        LOG.error("config_schema is not available: %s", _CONF_IMPORT_ERR)
        return 2
    try:
        cfg = _config_schema.load_config(args.config)
        _config_schema.validate(cfg)
        print("OK: configuration is valid.")
        return 0
    except KeyboardInterrupt:
        return 130
    except _config_schema.ConfigError as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1


def cmd_list_jobs(args: argparse.Namespace) -> int:
    if _config_schema is None:
        LOG.error("config_schema is not available: %s", _CONF_IMPORT_ERR)
        return 2
    try:
        cfg = _config_schema.load_config(args.config)
        rows = _extract_jobs_from_config(cfg)
        if not rows:
            print("No jobs found in config.")
            return 0
        _print_table(rows, headers=("JOB", "DETAILS"))
        return 0
    except KeyboardInterrupt:
        return 130
    except _config_schema.ConfigError as e:
        LOG.error("Failed to list jobs: %s", e)
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 1


def _run_module(module: str, kwargs: dict[str, Any], *, print_meta: bool) -> int:
    start_time = time.monotonic()
    LOG.debug("Run module %s with kwargs=%s", module, kwargs)

    try:
        meta, run_id = _runner.run_module_once(module=module, kwargs=kwargs, trigger_type="adhoc")
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "run_id": run_id,
            "module": module,
            "trigger_type": "adhoc",
            "kwargs": kwargs,
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })

        message = (meta or {}).get("message")
        print(f"DONE: {message}" if message else "DONE: Module run completed.")
        if print_meta and meta:
            print(json.dumps(meta, indent=2, default=str))
        return 0

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "module": module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    return _run_module(args.module, _parse_kv_pairs(args.kwargs or []), print_meta=args.print_meta)


def cmd_harvest(args: argparse.Namespace) -> int:
    kwargs: dict[str, Any] = {}
    if args.runs is not None:
        kwargs["runs"] = args.runs
    if args.sqlite_path:
        kwargs["sqlite_path"] = args.sqlite_path
    if args.industries:
        kwargs["industries"] = args.industries
    if args.no_details:
        kwargs["enrich_details"] = False
    return _run_module(HARVEST_MODULE, kwargs, print_meta=args.print_meta)


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the scheduler loop until a termination signal is received."""
    L.write_activity_log({"ts": _now_iso(), "event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(config_path=args.config)
        LOG.info("Scheduler started with jobs: %s", ", ".join(running.sched.get_job_ids()) or "(none)")

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def _safe_stop(name: str, handle: Any) -> None:
    """Stop and join a controller; errors are logged so shutdown always completes."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Job harvest service command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to config file (fallbacks to CONFIG_PATH env or an empty default).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # serve
    sp = sub.add_parser("serve", help="Run the main scheduler loop.")
    sp.set_defaults(func=cmd_serve)

    # run
    sp = sub.add_parser("run", help="Execute a module ad-hoc via runner.run_module_once().")
    sp.add_argument("module", help="Module to run (e.g., modules.job_harvest).")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Extra keyword arguments for the module (JSON values supported).",
    )
    sp.add_argument("--print-meta", action="store_true", help="Print the meta dict returned by the run.")
    sp.set_defaults(func=cmd_run)

    # harvest
    sp = sub.add_parser("harvest", help="Run the job harvest now.")
    sp.add_argument("--runs", type=int, help="Harvests to execute back-to-back (default 1).")
    sp.add_argument("--sqlite-path", help="SQLite file for listings and statistics.")
    sp.add_argument("--industries", help="Comma-separated subset of industries to walk.")
    sp.add_argument("--no-details", action="store_true", help="Skip detail-page enrichment.")
    sp.add_argument("--print-meta", action="store_true", help="Print the run summary as JSON.")
    sp.set_defaults(func=cmd_harvest)

    # list-jobs
    sp = sub.add_parser("list-jobs", help="Print all jobs from config.")
    sp.set_defaults(func=cmd_list_jobs)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
