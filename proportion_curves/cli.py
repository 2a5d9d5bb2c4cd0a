from __future__ import annotations

import argparse
import json
import re
import sys
import textwrap
from importlib.metadata import PackageNotFoundError, version as dist_version
from pathlib import Path
from typing import Any

import numpy as np

from .core import BreakpointCurve, Curve, CurveSet, FixedStepCurve, distance, weighted_average
from .errors import CurveError
from .logging import get_logger, set_log_mode
from .storage import get_serde_format, load_from_file, load_tree, save_to_file, value_kind

_LOG_MODE_CHOICES = ("warning", "info", "debug")
_SET_MODES = ("strict", "continuation", "extrapolation")
_PICKLE_SUFFIXES = ("icrv", "rcrv", "crvset")


def _resolve_version() -> str:
    try:
        return dist_version("Proportion-Curves")
    except PackageNotFoundError:
        return "dev"


class _CurveHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Hide argparse subparser metavar line and keep only concrete commands."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts: list[str] = []
            self._indent()
            for subaction in self._iter_indented_subactions(action):
                parts.append(self._format_action(subaction))
            self._dedent()
            return "".join(parts)
        return super()._format_action(action)


def _root_card() -> str:
    return textwrap.dedent(
        """
        Proportion-Curves CLI

        Start here:
          pcurve convert ./delays.txt -o ./delays.json
          pcurve info ./delays.json
          pcurve eval ./delays.json --x 120 300
          pcurve encode ./delays.json --max-bytes 64 -o ./delays.bin

        Use 'pcurve --help' for full options, 'pcurve help examples' for copy-paste examples.
        """
    ).strip()


def _examples_card() -> str:
    return textwrap.dedent(
        """
        Quick examples:
          pcurve convert ./delays.txt -o ./delays.json
          pcurve info ./delays.json
          pcurve eval ./delays.json --x 120 300 --json
          pcurve eval ./delays.json --y 0.05 0.5 0.95
          pcurve simplify ./delays.json --tolerance 0.01 -o ./small.json
          pcurve simplify ./delays.json --max-points 20 -o ./small.json
          pcurve encode ./delays.json --max-bytes 64 -o ./delays.bin
          pcurve decode ./delays.bin -o ./restored.json
          pcurve average ./a.json ./b.json --weights 0.25 0.75 -o ./mix.json
          pcurve distance ./a.json ./b.json
          pcurve set-at ./by_hour/ 7.5 --mode continuation
        """
    ).strip()


def _advanced_card() -> str:
    return textwrap.dedent(
        """
        Advanced options:
          -d, --debug         Enable debug logging (same as --log-mode debug)
          --log-mode MODE     warning|info|debug
          --format FORMAT     json|pickle for written curve files (default from
                              PROPORTION_CURVES_SERDE_FORMAT, else json)
          --json              Machine-readable output for supported commands
          --hex               (encode/decode) use hex text instead of raw bytes
        """
    ).strip()


def _to_json_safe(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return [_to_json_safe(item) for item in value.tolist()]
    if isinstance(value, np.generic):
        return _to_json_safe(value.item())
    if isinstance(value, dict):
        return {str(key): _to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_safe(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value


def _print_value(value: Any, as_json: bool) -> None:
    safe_value = _to_json_safe(value)
    if as_json or isinstance(safe_value, (dict, list)):
        print(json.dumps(safe_value, ensure_ascii=False, indent=2, default=str))
        return
    print(safe_value)


def _load_curve(path: str) -> Curve:
    value = load_from_file(path)
    if not isinstance(value, Curve):
        raise ValueError(f"{path} holds a {value_kind(value)}, not a single curve")
    return value


def _load_breakpoint_curve(path: str) -> BreakpointCurve:
    value = _load_curve(path)
    if not isinstance(value, BreakpointCurve):
        raise ValueError(f"{path} holds a {value_kind(value)}, expected a breakpoint curve")
    return value


def _output_format(out_path: Path, fmt: str | None) -> str:
    if fmt:
        return fmt
    suffix = out_path.suffix.lstrip(".").lower()
    if suffix == "json":
        return "json"
    if suffix in _PICKLE_SUFFIXES:
        return "pickle"
    return get_serde_format()


def _emit_value(value: Any, output: str | None, fmt: str | None) -> None:
    if output is None:
        _print_value(value.to_dict(), as_json=True)
        return
    out_path = Path(output).expanduser().resolve()
    save_to_file(value, out_path.parent, out_path.name, _output_format(out_path, fmt))
    print(f"Wrote {value_kind(value)} to {out_path}")


def _describe(value: Any) -> dict[str, Any]:
    kind = value_kind(value)
    if isinstance(value, CurveSet):
        return {"type": kind, "key_type": value.key_type.name, "keys": value.keys()}

    info: dict[str, Any] = {
        "type": kind,
        "x_type": value.x_type.name,
        "y_type": value.y_type.name,
        "points": len(value),
        "min_x": value.min_x(),
        "max_x": value.max_x(),
        "median_x": value.x_at_y(0.5),
    }
    if isinstance(value, FixedStepCurve):
        info["origin"] = value.origin
        info["step"] = value.step
    return info


def _cmd_info(args: argparse.Namespace) -> int:
    value = load_from_file(args.path)
    if args.json:
        _print_value(_describe(value), as_json=True)
    elif isinstance(value, BreakpointCurve):
        print(value.describe())
    else:
        for key, item in _describe(value).items():
            print(f"{key}:\t{item}")
    return 0


def _cmd_eval(args: argparse.Namespace) -> int:
    curve = _load_curve(args.path)
    if args.x is not None:
        rows = [{"x": x, "y": curve.y_at_x(x)} for x in args.x]
    else:
        rows = [{"x": curve.x_at_y(y), "y": y} for y in args.y]

    if args.json:
        _print_value(rows, as_json=True)
    else:
        for row in rows:
            print(f"{row['x']:.6g}\t{row['y']:.6g}")
    return 0


def _cmd_simplify(args: argparse.Namespace) -> int:
    curve = _load_breakpoint_curve(args.path)
    before = len(curve)
    if args.max_points is not None:
        curve.simplify_fixed(args.max_points)
    else:
        curve.simplify(args.tolerance)
    get_logger(action="cli_simplify").info("{} -> {} points", before, len(curve))
    _emit_value(curve, args.output, args.format)
    return 0


def _cmd_encode(args: argparse.Namespace) -> int:
    curve = _load_breakpoint_curve(args.path)
    payload = curve.encode() if args.max_bytes is None else curve.encode_limited(args.max_bytes)
    if args.output is None or args.hex:
        text = payload.hex()
        if args.output is None:
            print(text)
            return 0
        Path(args.output).expanduser().write_text(text + "\n", encoding="utf-8")
    else:
        Path(args.output).expanduser().write_bytes(payload)
    print(f"Encoded {len(curve)} points into {len(payload)} bytes")
    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    source = Path(args.path).expanduser()
    if not source.is_file():
        raise FileNotFoundError(f"compact curve file not found: {source}")
    if args.hex:
        payload = bytes.fromhex(source.read_text(encoding="utf-8").strip())
    else:
        payload = source.read_bytes()
    curve = BreakpointCurve.decode(payload)
    _emit_value(curve, args.output, args.format)
    return 0


def _cmd_average(args: argparse.Namespace) -> int:
    curves = [_load_curve(path) for path in args.paths]
    weights = args.weights if args.weights is not None else [1.0] * len(curves)
    result = weighted_average(curves, weights)
    _emit_value(result, args.output, args.format)
    return 0


def _cmd_distance(args: argparse.Namespace) -> int:
    value = distance(_load_curve(args.first), _load_curve(args.second))
    if args.json:
        _print_value({"distance": value}, as_json=True)
    else:
        print(f"{value:.6g}")
    return 0


def _cmd_set_at(args: argparse.Namespace) -> int:
    curve_set = load_tree(args.path)
    if args.mode == "continuation":
        curve = curve_set.curve_at_x_with_continuation(args.key)
    elif args.mode == "extrapolation":
        curve = curve_set.curve_at_x_with_extrapolation(args.key)
    else:
        curve = curve_set.curve_at_x(args.key)
    _emit_value(curve, args.output, args.format)
    return 0


def _parse_text_line(line: str, line_no: int) -> tuple[float, float] | None:
    data_part = line.split("#", 1)[0].strip()
    if not data_part:
        return None

    tokens = [tok for tok in re.split(r"[\s,]+", data_part) if tok]
    if len(tokens) < 2:
        raise ValueError(f"line {line_no}: expected at least 2 columns, got '{line.rstrip()}'")
    try:
        return float(tokens[0]), float(tokens[1])
    except ValueError as exc:
        raise ValueError(f"line {line_no}: cannot parse float values: '{line.rstrip()}'") from exc


def _cmd_convert(args: argparse.Namespace) -> int:
    input_path = Path(args.input).expanduser().resolve()
    if not input_path.is_file():
        raise FileNotFoundError(f"input file not found: {input_path}")

    pairs: list[tuple[float, float]] = []
    with input_path.open("r", encoding="utf-8") as fp:
        for line_no, line in enumerate(fp, start=1):
            parsed = _parse_text_line(line, line_no)
            if parsed is not None:
                pairs.append(parsed)
    if not pairs:
        raise ValueError(f"no valid data rows found in: {input_path}")

    curve = BreakpointCurve(pairs, x_type=args.x_type, y_type=args.y_type)
    output = args.output or str(input_path.with_suffix(".json"))
    _emit_value(curve, output, args.format)
    return 0


def _cmd_help(args: argparse.Namespace) -> int:
    if args.topic == "advanced":
        print(_advanced_card())
    else:
        print(_examples_card())
    return 0


def _add_log_mode_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-mode",
        choices=_LOG_MODE_CHOICES,
        default="warning",
        help="Log verbosity: warning, info or debug.",
    )


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write the resulting curve here. Default: print JSON to stdout.",
    )
    parser.add_argument(
        "--format",
        choices=("json", "pickle"),
        default=None,
        help="Serde format for --output (default: inferred from extension).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcurve",
        description="Inspect, combine and encode proportion curves.",
        formatter_class=_CurveHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"pcurve {_resolve_version()}",
    )
    parser.add_argument(
        "--help-advanced",
        action="store_true",
        help="Show advanced options and exit.",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging (equivalent to --log-mode debug).",
    )
    subparsers = parser.add_subparsers(
        dest="command",
        required=False,
        title="commands",
    )

    parser_info = subparsers.add_parser("info", help="Summarise a curve or curve set file")
    parser_info.add_argument("path", help="Curve file (.json, .icrv, .rcrv, .crvset)")
    parser_info.add_argument("--json", action="store_true", help="Output JSON summary.")
    _add_log_mode_arg(parser_info)
    parser_info.set_defaults(func=_cmd_info)

    parser_eval = subparsers.add_parser("eval", help="Evaluate y(x) or invert x(y)")
    parser_eval.add_argument("path", help="Curve file")
    query = parser_eval.add_mutually_exclusive_group(required=True)
    query.add_argument("--x", type=float, nargs="+", default=None, help="Domain values")
    query.add_argument("--y", type=float, nargs="+", default=None, help="Fractions in [0, 1]")
    parser_eval.add_argument("--json", action="store_true", help="Output JSON rows.")
    _add_log_mode_arg(parser_eval)
    parser_eval.set_defaults(func=_cmd_eval)

    parser_simplify = subparsers.add_parser("simplify", help="Reduce breakpoints")
    parser_simplify.add_argument("path", help="Breakpoint curve file")
    budget = parser_simplify.add_mutually_exclusive_group(required=True)
    budget.add_argument("--tolerance", type=float, default=None, help="Douglas-Peucker tolerance")
    budget.add_argument("--max-points", type=int, default=None, help="Keep at most N points")
    _add_output_args(parser_simplify)
    _add_log_mode_arg(parser_simplify)
    parser_simplify.set_defaults(func=_cmd_simplify)

    parser_encode = subparsers.add_parser("encode", help="Write the compact byte form")
    parser_encode.add_argument("path", help="Breakpoint curve file")
    parser_encode.add_argument(
        "--max-bytes",
        type=int,
        default=None,
        help="Byte budget; the curve is simplified to fit.",
    )
    parser_encode.add_argument("-o", "--output", default=None, help="Output file (default: hex on stdout)")
    parser_encode.add_argument("--hex", action="store_true", help="Write hex text instead of raw bytes.")
    _add_log_mode_arg(parser_encode)
    parser_encode.set_defaults(func=_cmd_encode)

    parser_decode = subparsers.add_parser("decode", help="Read the compact byte form")
    parser_decode.add_argument("path", help="Compact curve file")
    parser_decode.add_argument("--hex", action="store_true", help="Input holds hex text.")
    _add_output_args(parser_decode)
    _add_log_mode_arg(parser_decode)
    parser_decode.set_defaults(func=_cmd_decode)

    parser_average = subparsers.add_parser("average", help="Weighted average of curves")
    parser_average.add_argument("paths", nargs="+", help="Curve files")
    parser_average.add_argument(
        "--weights",
        type=float,
        nargs="+",
        default=None,
        help="One weight per curve (default: equal weights).",
    )
    _add_output_args(parser_average)
    _add_log_mode_arg(parser_average)
    parser_average.set_defaults(func=_cmd_average)

    parser_distance = subparsers.add_parser("distance", help="Area between two curves")
    parser_distance.add_argument("first", help="Curve file")
    parser_distance.add_argument("second", help="Curve file")
    parser_distance.add_argument("--json", action="store_true", help="Output JSON.")
    _add_log_mode_arg(parser_distance)
    parser_distance.set_defaults(func=_cmd_distance)

    parser_set_at = subparsers.add_parser("set-at", help="Curve of a curve set at a key")
    parser_set_at.add_argument("path", help="Curve set file or tree directory")
    parser_set_at.add_argument("key", type=float, help="Key to interpolate at")
    parser_set_at.add_argument(
        "--mode",
        choices=_SET_MODES,
        default="strict",
        help="Out-of-range policy: strict (error), continuation or extrapolation.",
    )
    _add_output_args(parser_set_at)
    _add_log_mode_arg(parser_set_at)
    parser_set_at.set_defaults(func=_cmd_set_at)

    parser_convert = subparsers.add_parser(
        "convert",
        help="Convert 2-column text (x y) into a breakpoint curve file",
    )
    parser_convert.add_argument("input", help="Input text path (2 numeric columns: x y)")
    parser_convert.add_argument("--x-type", default="f32", help="Storage type for x values")
    parser_convert.add_argument("--y-type", default="f32", help="Storage type for y values")
    _add_output_args(parser_convert)
    _add_log_mode_arg(parser_convert)
    parser_convert.set_defaults(func=_cmd_convert)

    parser_help = subparsers.add_parser("help", help="Show quick examples and tips")
    parser_help.add_argument(
        "topic",
        nargs="?",
        default="examples",
        choices=("examples", "advanced"),
        help="Help topic",
    )
    parser_help.set_defaults(func=_cmd_help)

    return parser


def main(argv: list[str] | None = None) -> int:
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    force_debug = False
    parse_argv: list[str] = []
    for token in raw_argv:
        if token in ("-d", "--debug"):
            force_debug = True
            continue
        parse_argv.append(token)

    parser = build_parser()
    args = parser.parse_args(parse_argv)

    if args.help_advanced:
        print(_advanced_card())
        return 0

    if args.command is None:
        print(_root_card())
        return 0

    set_log_mode("debug" if force_debug else getattr(args, "log_mode", "warning"))

    try:
        return args.func(args)
    except CurveError as exc:
        print(f"pcurve error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        print(f"pcurve error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
