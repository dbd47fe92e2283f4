# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

"""
Loads the user's existing kubeconfig and extracts the active context.
"""

import base64
import os
from pathlib import Path
from typing import IO, Any

import yaml

from coreason_kubeconfig.exceptions import InputError, MalformedDataError
from coreason_kubeconfig.models import Kubeconfig, KubeconfigNames

# File references that are relative to the kubeconfig file that declares them.
_LOCAL_PATH_FIELDS = {
    "clusters": ("cluster", ("certificate-authority",)),
    "users": ("user", ("client-certificate", "client-key", "tokenFile")),
}


def kubeconfig_paths() -> list[Path]:
    """Every file named by $KUBECONFIG, in order and without duplicates, or ~/.kube/config."""
    paths: list[Path] = []
    for entry in os.environ.get("KUBECONFIG", "").split(os.pathsep):
        path = Path(entry).expanduser() if entry else None
        if path is not None and path not in paths:
            paths.append(path)
    return paths or [Path.home() / ".kube" / "config"]


def _resolve_local_paths(raw: dict[str, Any], base_dir: Path) -> None:
    for section, (key, fields) in _LOCAL_PATH_FIELDS.items():
        for item in raw.get(section) or []:
            entry = item.get(key) or {}
            for field in fields:
                if entry.get(field):
                    # An absolute path replaces base_dir.
                    entry[field] = str(base_dir / Path(entry[field]).expanduser())


def _inline_certificate_authority_files(raw: dict[str, Any]) -> None:
    # Flatten `certificate-authority: <file>` into `certificate-authority-data`.
    for item in raw.get("clusters") or []:
        cluster = item.get("cluster") or {}
        ca_path = cluster.get("certificate-authority")
        if not ca_path or cluster.get("certificate-authority-data"):
            continue
        try:
            cluster["certificate-authority-data"] = base64.b64encode(Path(ca_path).read_bytes()).decode("ascii")
        except OSError as e:
            raise InputError(f"could not read certificate-authority file {ca_path}: {e}") from e


def _parse_raw(text: str | IO[str], base_dir: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise MalformedDataError(f"could not parse kubeconfig YAML: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedDataError("kubeconfig must be a YAML mapping")
    try:
        _resolve_local_paths(raw, base_dir)
    except (AttributeError, TypeError) as e:
        raise MalformedDataError(f"kubeconfig is malformed: {e}") from e
    _inline_certificate_authority_files(raw)
    return raw


def _read_raw(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"could not load --kubeconfig: {e}") from e
    return _parse_raw(text, path.parent)


def merge_kubeconfigs(raws: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Merges kubeconfig dicts the way kubectl merges $KUBECONFIG: the first file to define
    a cluster, user or context name wins, as does the first non-empty current-context.
    """
    merged: dict[str, Any] = {"clusters": [], "users": [], "contexts": [], "current-context": ""}
    for raw in raws:
        if not merged["current-context"]:
            merged["current-context"] = raw.get("current-context") or ""
        for section in ("clusters", "users", "contexts"):
            seen = {item["name"] for item in merged[section]}
            for item in raw.get(section) or []:
                if item["name"] not in seen:
                    merged[section].append(item)
                    seen.add(item["name"])
    return merged


def load_kubeconfig(path: str | os.PathLike[str] | None = None) -> Kubeconfig:
    """
    Reads and parses a kubeconfig.

    Args:
        path: Path to the kubeconfig. Defaults to the merge of every file in
            `kubeconfig_paths()`; files that do not exist are skipped.

    Returns:
        Kubeconfig: The parsed kubeconfig.

    Raises:
        InputError: If the file cannot be read, or no default file exists.
        MalformedDataError: If a file is not a valid kubeconfig.
    """
    if path:
        return Kubeconfig.from_dict(_read_raw(Path(path).expanduser()))

    candidates = kubeconfig_paths()
    existing = [candidate for candidate in candidates if candidate.exists()]
    if not existing:
        raise InputError(
            f"could not load --kubeconfig: no kubeconfig found at {', '.join(str(c) for c in candidates)}"
        )
    raws = [_read_raw(candidate) for candidate in existing]
    try:
        merged = merge_kubeconfigs(raws)
    except (KeyError, TypeError, AttributeError) as e:
        raise MalformedDataError(f"kubeconfig is malformed: {e}") from e
    return Kubeconfig.from_dict(merged)


def parse_kubeconfig(text: str | IO[str], base_dir: Path | None = None) -> Kubeconfig:
    """Parses kubeconfig YAML; relative file references resolve against `base_dir` (default: cwd)."""
    return Kubeconfig.from_dict(_parse_raw(text, base_dir or Path.cwd()))


def current_context_names(kubeconfig: Kubeconfig, context_override: str | None = None) -> KubeconfigNames:
    """
    Resolves the (context, cluster, user) names of the active or overridden context.

    Raises:
        InputError: If the context, or the cluster or user it references, does not exist.
    """
    context_name = context_override or kubeconfig.current_context
    context = kubeconfig.contexts.get(context_name)
    if context is None:
        raise InputError(f"could not load --kubeconfig/--kubeconfig-context: no such context {context_name!r}")
    if context.cluster not in kubeconfig.clusters:
        raise InputError(f"could not load --kubeconfig/--kubeconfig-context: no such cluster {context.cluster!r}")
    if context.user not in kubeconfig.users:
        raise InputError(f"could not load --kubeconfig/--kubeconfig-context: no such user {context.user!r}")
    return KubeconfigNames(context_name=context_name, cluster_name=context.cluster, user_name=context.user)


def write_kubeconfig_yaml(kubeconfig: Kubeconfig, out: IO[str]) -> None:
    """Serializes `kubeconfig` as YAML onto `out`."""
    yaml.safe_dump(kubeconfig.to_dict(), out, default_flow_style=False, sort_keys=False)
