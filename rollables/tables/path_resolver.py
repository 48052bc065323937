"""
Reference path resolution.

Turns the raw path written in a definition into the normalized absolute
path the registry is keyed by. Three forms are accepted:
- `$/a/b`  root-relative, `$` stands for the registry root
- `./a`, `../a`  relative to the directory of the referencing definition
- `a/b`, `/a/b`  absolute
"""

import logging
import re

logger = logging.getLogger(__name__)

_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_PARENT_SEGMENT = re.compile(r"/(?!\.\.?/)[^/]+/\.\./")
_LEADING_PARENT = re.compile(r"^/\.\./")


def _collapse_slashes(path: str) -> str:
    return _DUPLICATE_SLASHES.sub("/", path)


def _finish(path: str) -> str:
    path = _collapse_slashes(path)
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def parent_dir(path: str) -> str:
    """Directory containing `path` ("/x/y" -> "/x", "/x" -> "/")."""
    path = _finish("/" + path)
    head, _, _ = path.rpartition("/")
    return head or "/"


def _normalize_dots(path: str) -> str:
    """Collapse `.` and `..` segments until nothing changes.

    A `..` directly below `/` is dropped.
    """
    current = _collapse_slashes(path + "/")
    # every pass removes at least one segment, so len() passes always suffice
    for _ in range(len(current) + 1):
        updated = current.replace("/./", "/")
        updated = _PARENT_SEGMENT.sub("/", updated, count=1)
        if _LEADING_PARENT.match(updated):
            logger.debug(f"Path {path!r} climbs above the root; clamping")
            updated = _LEADING_PARENT.sub("/", updated, count=1)
        if updated == current:
            break
        current = updated
    return current


def _split_root(path: str, root: str) -> tuple[str, str]:
    """Split `path` into the root prefix and the part below it."""
    prefix = root.rstrip("/")
    if prefix and (path == prefix or path.startswith(prefix + "/")):
        return prefix, path[len(prefix):]
    return "", path


def resolve_path(raw: str, context_dir: str, root: str = "/") -> str:
    """
    Resolve a raw reference path to a normalized absolute path.

    Args:
        raw: Path as written in the definition
        context_dir: Path of the definition holding the reference
        root: Registry root that `$` and absolute paths hang from

    Returns:
        Absolute path without `.`, `..` or `$` segments. A `..` that would
        climb above the root stops there. Resolving an already-resolved
        path returns it unchanged.
    """
    raw = raw.strip()
    if raw.startswith("$/") or raw == "$":
        joined = f"{root}/{raw[1:]}"
    elif raw.startswith("."):
        joined = f"{parent_dir(context_dir)}/{raw}"
    else:
        prefix = root.rstrip("/")
        already_rooted = prefix and (raw == prefix or raw.startswith(prefix + "/"))
        joined = raw if already_rooted else f"{root}/{raw}"
    prefix, rest = _split_root(_collapse_slashes(joined), root)
    return _finish(prefix + _normalize_dots(rest or "/"))
