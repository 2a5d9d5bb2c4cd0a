from __future__ import annotations

import json
import os
import pickle
import re
import tempfile
from pathlib import Path
from typing import Any, Mapping

from .core.breakpoint import BreakpointCurve
from .core.curve_set import CurveSet
from .core.fixed_step import FixedStepCurve
from .logging import get_logger

_SERDE_FORMAT_ENV = "PROPORTION_CURVES_SERDE_FORMAT"
_DEFAULT_SERDE_FORMAT = "json"
_SERDE_FORMATS = ("json", "pickle")
_PICKLE_PROTOCOL = 5
_TREE_INDEX_FILENAME = "index.json"
_TREE_INDEX_VERSION = 1

_KIND_BY_TYPE: dict[type, str] = {
    BreakpointCurve: "breakpoint",
    FixedStepCurve: "fixed_step",
    CurveSet: "curve_set",
}
_PICKLE_EXTENSIONS = {
    "breakpoint": "icrv",
    "fixed_step": "rcrv",
    "curve_set": "crvset",
}


def _normalize_format(fmt: str) -> str:
    normalized = fmt.strip().lower()
    if normalized not in _SERDE_FORMATS:
        valid = ", ".join(_SERDE_FORMATS)
        raise ValueError(f"Invalid serde format '{fmt}'. Expected one of: {valid}")
    return normalized


def get_serde_format(fmt: str | None = None) -> str:
    """Resolve the serialization format: argument, then environment, then json."""

    if fmt:
        return _normalize_format(fmt)
    return _normalize_format(os.getenv(_SERDE_FORMAT_ENV, _DEFAULT_SERDE_FORMAT))


def value_kind(value: Any) -> str:
    kind = _KIND_BY_TYPE.get(type(value))
    if kind is None:
        raise TypeError(f"cannot serialize object of type {type(value).__name__}")
    return kind


def file_extension(value: Any, fmt: str | None = None) -> str:
    resolved = get_serde_format(fmt)
    if resolved == "json":
        return "json"
    return _PICKLE_EXTENSIONS[value_kind(value)]


def curve_from_dict(payload: Mapping[str, Any]) -> Any:
    """Rebuild a curve or curve set from its ``to_dict`` payload."""

    kind = payload.get("type")
    if kind == "breakpoint":
        return BreakpointCurve.from_dict(payload)
    if kind == "fixed_step":
        return FixedStepCurve.from_dict(payload)
    if kind == "curve_set":
        return CurveSet.from_dict(payload, curve_from_dict=curve_from_dict)
    raise ValueError(f"unknown curve payload type: {kind!r}")


def dumps(value: Any, fmt: str | None = None) -> bytes:
    resolved = get_serde_format(fmt)
    value_kind(value)
    if resolved == "json":
        return json.dumps(value.to_dict(), ensure_ascii=False, indent=2).encode("utf-8")
    return pickle.dumps(value, protocol=_PICKLE_PROTOCOL)


def loads(data: bytes, fmt: str | None = None) -> Any:
    resolved = get_serde_format(fmt)
    if resolved == "json":
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"invalid curve json: {exc}") from exc
        if not isinstance(raw, Mapping):
            raise ValueError("curve json must contain an object")
        return curve_from_dict(raw)

    value = pickle.loads(data)
    value_kind(value)
    return value


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as fp:
            fp.write(payload)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(temp_name, path)
    except Exception:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _format_from_path(path: Path) -> str:
    suffix = path.suffix.lstrip(".").lower()
    if suffix == "json":
        return "json"
    if suffix in _PICKLE_EXTENSIONS.values():
        return "pickle"
    raise ValueError(f"cannot infer serde format from file name '{path.name}'")


def save_to_file(
    value: Any,
    dir_name: str | Path,
    file_name: str,
    fmt: str | None = None,
    *,
    logger: Any | None = None,
) -> Path:
    """Serialize ``value`` into ``dir_name/file_name`` in one atomic write."""

    local_logger = get_logger(logger, action="save_to_file")
    path = Path(dir_name).expanduser() / file_name
    _atomic_write_bytes(path, dumps(value, fmt))
    local_logger.info("wrote {} to {}", value_kind(value), str(path))
    return path


def load_from_file(
    path: str | Path,
    fmt: str | None = None,
    *,
    logger: Any | None = None,
) -> Any:
    local_logger = get_logger(logger, action="load_from_file")
    resolved = Path(path).expanduser()
    if not resolved.exists() or not resolved.is_file():
        raise FileNotFoundError(f"curve file not found: {resolved}")
    value = loads(resolved.read_bytes(), fmt or _format_from_path(resolved))
    local_logger.info("loaded {} from {}", value_kind(value), str(resolved))
    return value


def _safe_name(name: str) -> str:
    safe = re.sub(r"[^0-9A-Za-z_.-]+", "_", name).strip("._")
    return safe or "curve_set"


def save_tree(
    curve_set: CurveSet,
    dir_name: str | Path,
    fmt: str | None = None,
    file_levels: int = 1,
    *,
    name: str = "curve_set",
    logger: Any | None = None,
) -> Path:
    """Save a curve set as a directory tree.

    With ``file_levels == 0`` the whole set goes into one file. Otherwise a
    directory ``dir_name/name`` receives one file per curve plus an
    ``index.json`` with the keys; nested curve sets recurse with
    ``file_levels - 1``.
    """

    if file_levels < 0:
        raise ValueError(f"file_levels must be >= 0, got {file_levels}")
    resolved_format = get_serde_format(fmt)
    safe = _safe_name(name)
    if file_levels == 0:
        return save_to_file(
            curve_set,
            dir_name,
            f"{safe}.{file_extension(curve_set, resolved_format)}",
            resolved_format,
            logger=logger,
        )

    local_logger = get_logger(logger, action="save_tree")
    tree_dir = Path(dir_name).expanduser() / safe
    tree_dir.mkdir(parents=True, exist_ok=True)

    entries: list[dict[str, Any]] = []
    for index, (key, child) in enumerate(curve_set):
        child_name = f"{index:04d}"
        if isinstance(child, CurveSet):
            child_path = save_tree(
                child,
                tree_dir,
                resolved_format,
                file_levels - 1,
                name=child_name,
                logger=logger,
            )
            entries.append({"key": key, "path": child_path.name, "tree": child_path.is_dir()})
            continue

        file_name = f"{child_name}.{file_extension(child, resolved_format)}"
        save_to_file(child, tree_dir, file_name, resolved_format, logger=logger)
        entries.append({"key": key, "path": file_name, "tree": False})

    index_payload = {
        "version": _TREE_INDEX_VERSION,
        "type": "curve_set",
        "key_type": curve_set.key_type.name,
        "format": resolved_format,
        "entries": entries,
    }
    raw = json.dumps(index_payload, ensure_ascii=False, indent=2).encode("utf-8")
    _atomic_write_bytes(tree_dir / _TREE_INDEX_FILENAME, raw)
    local_logger.info("saved curve set with {} entries to {}", len(entries), str(tree_dir))
    return tree_dir


def load_tree(path: str | Path, *, logger: Any | None = None) -> CurveSet:
    """Inverse of :func:`save_tree` for either a single file or a tree directory."""

    resolved = Path(path).expanduser()
    if resolved.is_file():
        value = load_from_file(resolved, logger=logger)
        if not isinstance(value, CurveSet):
            raise TypeError(f"{resolved} does not contain a curve set")
        return value

    index_path = resolved / _TREE_INDEX_FILENAME
    if not index_path.is_file():
        raise FileNotFoundError(f"curve tree index not found: {index_path}")
    try:
        index = json.loads(index_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid curve tree index '{index_path}': {exc}") from exc
    if not isinstance(index, Mapping) or not isinstance(index.get("entries"), list):
        raise ValueError(f"curve tree index '{index_path}' must contain an 'entries' list")

    fmt = get_serde_format(str(index.get("format", _DEFAULT_SERDE_FORMAT)))
    curve_set = CurveSet(key_type=str(index.get("key_type", "f32")))
    for idx, entry in enumerate(index["entries"]):
        if not isinstance(entry, Mapping) or "key" not in entry or "path" not in entry:
            raise ValueError(f"curve tree entry #{idx} must contain 'key' and 'path'")
        entry_path = resolved / str(entry["path"])
        if entry.get("tree", False):
            child = load_tree(entry_path, logger=logger)
        else:
            child = load_from_file(entry_path, fmt, logger=logger)
        curve_set.add_curve(float(entry["key"]), child, logger=logger)

    get_logger(logger, action="load_tree").info(
        "loaded curve set with {} entries from {}", len(curve_set), str(resolved)
    )
    return curve_set
