from __future__ import annotations

import argparse
import json
import os
import sys
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .audit.discovery import DEFAULT_MAX_DEPTH
from .auth.providers import AUTH_METHODS
from .util.time import utc_now_iso

# --------
# Defaults
# --------
COMMANDS = ("run", "validate-auth", "list-compartments")
DEFAULT_COMMAND = "run"
ALLOWED_CONFIG_KEYS = {
    "outdir",
    "auth",
    "profile",
    "tenancy_ocid",
    "config_file",
    "log_level",
    "json_logs",
    "log_file",
    "max_depth",
    "progress",
    "interactive",
}
BOOL_CONFIG_KEYS = {"json_logs", "progress", "interactive"}
INT_CONFIG_KEYS = {"max_depth"}
PATH_CONFIG_KEYS = {"outdir", "log_file", "config_file"}
STR_CONFIG_KEYS = {"auth", "profile", "tenancy_ocid", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Output
    outdir: Path = field(default_factory=Path.cwd)

    # Auth
    auth: str = "auto"  # auto|cloud_shell|config|security_token|instance|resource
    profile: Optional[str] = None
    tenancy_ocid: Optional[str] = None
    config_file: Optional[Path] = None

    # Logging / console
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[Path] = None
    progress: bool = True
    interactive: bool = True

    # Traversal
    max_depth: int = DEFAULT_MAX_DEPTH

    # Internal/derived
    started_at: str = field(default_factory=utc_now_iso)


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _normalize_auth(value: Any) -> str:
    auth = str(value).lower()
    if auth not in AUTH_METHODS:
        raise ValueError(f"Config field 'auth' must be one of: {', '.join(AUTH_METHODS)}")
    return auth


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ValueError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"Config field '{key}' must be a string")
            normalized[key] = value
    if "auth" in normalized:
        normalized["auth"] = _normalize_auth(normalized["auth"])
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oci-policy-audit",
        description="Audit IAM policies across the OCI compartment hierarchy",
    )
    subparsers = parser.add_subparsers(dest="command")

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
        p.add_argument("--auth", default=None, choices=list(AUTH_METHODS), help="Auth method (default: auto)")
        p.add_argument("--profile", default=None, help="OCI config profile (config/security_token auth)")
        p.add_argument("--oci-config-file", dest="config_file", type=Path, default=None, help="OCI config file")
        p.add_argument(
            "--tenancy",
            dest="tenancy_ocid",
            default=None,
            help="Tenancy OCID (required for principal auth when it cannot be inferred)",
        )
        p.add_argument(
            "--interactive",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Prompt for the OCI profile when it cannot be detected",
        )

    p_run = subparsers.add_parser("run", help="Discover compartments and write the policy reports")
    add_common(p_run)
    p_run.add_argument("--outdir", type=Path, default=None, help="Directory for report files (default: cwd)")
    p_run.add_argument("--max-depth", type=int, default=None, help=f"Compartment depth cap (default {DEFAULT_MAX_DEPTH})")
    p_run.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show per-compartment console progress",
    )

    p_val = subparsers.add_parser("validate-auth", help="Check connectivity to the identity service")
    add_common(p_val)

    p_lc = subparsers.add_parser("list-compartments", help="Print the compartment tree")
    add_common(p_lc)
    p_lc.add_argument("--max-depth", type=int, default=None, help=f"Compartment depth cap (default {DEFAULT_MAX_DEPTH})")

    return parser


def _with_default_command(argv: List[str]) -> List[str]:
    if argv and argv[0] in COMMANDS:
        return argv
    if argv and argv[0] in ("-h", "--help"):
        return argv
    return [DEFAULT_COMMAND, *argv]


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[List[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.
    Running with no arguments at all selects the "run" command.

    Returns:
      (command, RunConfig) where command is one of run|validate-auth|list-compartments
    """
    if args is not None:
        ns = args
    else:
        raw = list(argv) if argv is not None else list(sys.argv[1:])
        ns = build_parser().parse_args(_with_default_command(raw))
    command = ns.command or DEFAULT_COMMAND

    base: Dict[str, Any] = {
        "outdir": None,
        "auth": "auto",
        "profile": None,
        "tenancy_ocid": None,
        "config_file": None,
        "log_level": "INFO",
        "json_logs": False,
        "log_file": None,
        "max_depth": DEFAULT_MAX_DEPTH,
        "progress": True,
        "interactive": True,
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": _env_str("OCI_POLICY_AUDIT_OUTDIR"),
            "auth": _env_str("OCI_POLICY_AUDIT_AUTH"),
            "profile": _env_str("OCI_POLICY_AUDIT_PROFILE"),
            "tenancy_ocid": _env_str("OCI_TENANCY_OCID"),
            "config_file": _env_str("OCI_POLICY_AUDIT_OCI_CONFIG_FILE"),
            "log_level": _env_str("OCI_POLICY_AUDIT_LOG_LEVEL"),
            "json_logs": _env_bool("OCI_POLICY_AUDIT_JSON_LOGS"),
            "log_file": _env_str("OCI_POLICY_AUDIT_LOG_FILE"),
            "max_depth": _env_int("OCI_POLICY_AUDIT_MAX_DEPTH"),
            "progress": _env_bool("OCI_POLICY_AUDIT_PROGRESS"),
            "interactive": _env_bool("OCI_POLICY_AUDIT_INTERACTIVE"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": getattr(ns, "outdir", None),
            "auth": getattr(ns, "auth", None),
            "profile": getattr(ns, "profile", None),
            "tenancy_ocid": getattr(ns, "tenancy_ocid", None),
            "config_file": getattr(ns, "config_file", None),
            "log_level": getattr(ns, "log_level", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_file": getattr(ns, "log_file", None),
            "max_depth": getattr(ns, "max_depth", None),
            "progress": getattr(ns, "progress", None),
            "interactive": getattr(ns, "interactive", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    max_depth = int(merged["max_depth"] if merged["max_depth"] is not None else DEFAULT_MAX_DEPTH)
    if max_depth < 0:
        raise ValueError("max_depth must be >= 0")
    profile = merged.get("profile")
    tenancy = merged.get("tenancy_ocid")

    cfg = RunConfig(
        outdir=Path(merged["outdir"]) if merged.get("outdir") else Path.cwd(),
        auth=_normalize_auth(merged.get("auth") or "auto"),
        profile=str(profile) if profile else None,
        tenancy_ocid=str(tenancy) if tenancy else None,
        config_file=Path(merged["config_file"]).expanduser() if merged.get("config_file") else None,
        log_level=str(merged.get("log_level") or "INFO").upper(),
        json_logs=bool(merged["json_logs"]),
        log_file=Path(merged["log_file"]) if merged.get("log_file") else None,
        progress=bool(merged["progress"]),
        interactive=bool(merged["interactive"]),
        max_depth=max_depth,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "outdir": str(cfg.outdir),
        "auth": cfg.auth,
        "profile": cfg.profile,
        "tenancy_ocid": cfg.tenancy_ocid,
        "config_file": str(cfg.config_file) if cfg.config_file else None,
        "log_level": cfg.log_level,
        "json_logs": cfg.json_logs,
        "log_file": str(cfg.log_file) if cfg.log_file else None,
        "max_depth": cfg.max_depth,
        "progress": cfg.progress,
        "interactive": cfg.interactive,
        "started_at": cfg.started_at,
    }
