"""
intentcad CLI

    intentcad compile  objects.json [--ir-only] [--no-evaluator]
    intentcad sequence intent.json
    intentcad execute  intent.json [--fallback] [--export stl|obj|step --out PATH]
    intentcad serve

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from intentcad.config import Settings, settings as default_settings
from intentcad.errors import IntentCadError
from intentcad.execution.engine import ExecutionEngine, ExecutionProgress
from intentcad.kernel_bridge import KernelBridge
from intentcad.logging_setup import configure_logging
from intentcad.pipeline import DesignSession, plan_intent, run_intent
from intentcad.intent.compiler import IntentCompiler
from intentcad.sequencing.sequencer import OperationSequencer


class IntentCadCLIError(Exception):
    """User-facing CLI error."""
    pass


def load_json(path: Path) -> dict:
    path = path.resolve()
    if not path.exists():
        raise IntentCadCLIError(f"File not found: {path}")
    try:
        with path.open("r") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise IntentCadCLIError(f"Failed to read {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise IntentCadCLIError(f"{path.name} must contain a JSON object")
    return data


def _emit(payload: dict) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def _settings(args) -> Settings:
    if getattr(args, "fallback", False) or getattr(args, "no_evaluator", False):
        return default_settings.model_copy(update={"evaluator": "disabled"})
    return default_settings


# ---------------------------------
# Commands
# ---------------------------------

async def _compile(args) -> int:
    objects = load_json(args.objects_file)
    if "objects" in objects and isinstance(objects["objects"], dict):
        objects = objects["objects"]

    if args.ir_only:
        ir = IntentCompiler().compile_workspace(objects)
        _emit({"intent_hash": ir.hash, "ir": ir.to_dict()})
        return 0

    session = DesignSession(KernelBridge(settings=_settings(args)))
    await session.start()
    try:
        res = await session.compile(objects)
    finally:
        await session.close()

    _emit(
        {
            "intent_hash": res.intent_hash,
            "status": res.status.value,
            "triangles": res.mesh.triangle_count if res.mesh is not None else 0,
            "topology": res.topology,
            "mfg_report": res.mfg_report,
            "error": res.error,
        }
    )
    return 0 if res.error is None or res.status.value == "fallback" else 1


def _sequence(args) -> int:
    plan = plan_intent(load_json(args.intent_file))
    _emit(
        {
            "operations": [op.to_dict() for op in plan.operations],
            "estimated_time": OperationSequencer.estimate_total_time(plan.operations),
        }
    )
    return 0


async def _execute(args) -> int:
    intent = load_json(args.intent_file)
    engine = ExecutionEngine(settings=_settings(args))

    def progress(event: ExecutionProgress) -> None:
        print(
            f"[{event.current}/{event.total}] {event.status.value:<8} {event.operation.operation}",
            file=sys.stderr,
        )

    try:
        run = await run_intent(intent, engine=engine, on_progress=progress)
        execution = run.execution
        fallback = engine.using_fallback

        out = None
        if execution.ok and args.export and execution.last_geometry_id:
            content = await engine.export_geometry(execution.last_geometry_id, args.export)
            out = (args.out or Path(f"model.{args.export}")).resolve()
            out.write_text(str(content))
    finally:
        await engine.dispose()

    _emit(
        {
            "ok": execution.ok,
            "fallback": fallback,
            "completed": execution.completed,
            "geometry_id": execution.last_geometry_id,
            "failed_operation": execution.failed_operation.to_dict() if execution.failed_operation else None,
            "error": execution.error_message,
            "export": str(out) if out else None,
        }
    )
    return 0 if execution.ok else 1


def _serve(args) -> int:
    from intentcad.api.app import main as serve

    serve()
    return 0


# ---------------------------------
# Entry point
# ---------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intentcad",
        description="intentcad: design intent -> geometry",
    )
    parser.add_argument("--log-level", default=None, help="Override INTENTCAD_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("compile", help="Compile workspace objects to a GeometryIR and evaluate it")
    p.add_argument("objects_file", type=Path, help="JSON object of workspace objects keyed by id")
    p.add_argument("--ir-only", action="store_true", help="Print the IR, do not start the evaluator")
    p.add_argument("--no-evaluator", action="store_true", help="Do not start the evaluator")

    p = sub.add_parser("sequence", help="Print the operation sequence for a structured intent")
    p.add_argument("intent_file", type=Path)

    p = sub.add_parser("execute", help="Execute a structured intent")
    p.add_argument("intent_file", type=Path)
    p.add_argument("--fallback", action="store_true", help="Use local fallback geometry only")
    p.add_argument("--export", choices=["stl", "obj", "step"], default=None)
    p.add_argument("--out", type=Path, default=None, help="Export path (default: model.<fmt>)")

    sub.add_parser("serve", help="Run the HTTP API")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "compile":
            return asyncio.run(_compile(args))
        if args.command == "sequence":
            return _sequence(args)
        if args.command == "execute":
            return asyncio.run(_execute(args))
        return _serve(args)
    except (IntentCadCLIError, IntentCadError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
