from __future__ import annotations
import os
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, List, Optional, Sequence, Union
import yaml

_CONFIG_DIR_ENV = "TOPHOSTS_CONFIG_DIR"

_DEFAULT_TEMPLATE_YAML = dedent(
    """
    backend: zabbix

    zabbix:
      api_url: https://zabbix.example.com/api_jsonrpc.php
      api_token: ${env:ZABBIX_API_TOKEN}
      username: ""
      password: ""
      timeout: 30
      validate_certs: true

    snapshot:
      path: ./snapshot.yaml

    time:
      from: now-1h
      to: now
      timezone: ""

    widget:
      name: Top hosts
      groupids: []
      hostids: []
      column: 1
      order: top
      show_lines: 10
      columns:
        - name: Host
          data: host_name
        - name: CPU utilization
          data: item_value
          item: CPU utilization
          aggregate_function: avg
          display: bar
          min: "0"
          max: "100"
          thresholds:
            - color: FFFF00
              threshold: "70"
            - color: FF0000
              threshold: "90"
        - name: Free memory
          data: item_value
          item: Available memory
          display: as_is
    """
)


def _candidate_config_dirs() -> List[Path]:
    """Ordered list of directories to scan for configuration files."""

    directories: List[Path] = []

    home_dir = Path.home() / ".tophosts"
    directories.append(home_dir)

    cwd_dir = Path.cwd() / "config"
    if cwd_dir not in directories:
        directories.append(cwd_dir)

    env_value = os.environ.get(_CONFIG_DIR_ENV, "")
    for fragment in (part.strip() for part in env_value.split(os.pathsep) if part.strip()):
        candidate = Path(fragment).expanduser()
        if candidate not in directories:
            directories.append(candidate)

    return directories


def _candidate_config_files() -> List[Path]:
    """Fallback individual configuration files to consider."""

    files: List[Path] = []
    candidates = [
        Path.cwd() / "tophosts.yaml",
        Path.cwd() / "tophosts.yml",
        Path.home() / ".tophosts" / "tophosts.yaml",
        Path.home() / ".tophosts" / "tophosts.yml",
    ]

    env_value = os.environ.get(_CONFIG_DIR_ENV, "")
    for fragment in (part.strip() for part in env_value.split(os.pathsep) if part.strip()):
        candidate = Path(fragment).expanduser()
        if candidate.suffix.lower() in {".yaml", ".yml"}:
            candidates.append(candidate)

    seen: set[Path] = set()
    for path in candidates:
        if path not in seen:
            files.append(path)
            seen.add(path)

    return files

PathLike = Union[str, Path]


def load_project_config(explicit_files: Sequence[PathLike] | None = None) -> Dict[str, Any]:
    """Load and merge all YAML configuration files.

    Scans ~/.tophosts/, ./config/ and the TOPHOSTS_CONFIG_DIR directories for
    .yml and .yaml files (falling back to a single tophosts.yaml) and merges
    them in lexicographic order using deep merge. Explicit files are merged
    last.

    Returns:
        Merged configuration dictionary
    """
    files: List[Path] = []
    seen: set[Path] = set()

    for directory in _candidate_config_dirs():
        if directory.exists() and directory.is_dir():
            for pattern in ("*.yml", "*.yaml"):
                for path in sorted(directory.glob(pattern)):
                    if path not in seen:
                        files.append(path)
                        seen.add(path)

    data: Dict[str, Any] = {}
    if not files:
        for candidate in _candidate_config_files():
            if candidate.exists() and candidate.is_file() and candidate not in seen:
                files.append(candidate)
                seen.add(candidate)

    if explicit_files:
        for spec in explicit_files:
            candidate = Path(spec).expanduser()
            if candidate not in seen:
                files.append(candidate)
                seen.add(candidate)

    for path in files:
        try:
            content = yaml.safe_load(path.read_text())
        except FileNotFoundError:
            continue
        if content:
            deep_merge(data, content)
    return data

def deep_merge(a: dict, b: dict) -> dict:
    """Recursively merge dictionary b into dictionary a.

    For nested dictionaries, performs a deep merge. For other values,
    b's values take precedence over a's values.

    Args:
        a: Target dictionary (modified in place)
        b: Source dictionary to merge from

    Returns:
        The modified dictionary a
    """
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(a.get(k), dict):
            deep_merge(a[k], v)
        else:
            a[k] = v
    return a

def env_to_overrides(env: dict[str, str]) -> dict:
    """Convert TOPHOSTS__ prefixed environment variables to config overrides.

    TOPHOSTS__zabbix__api_url becomes {zabbix: {api_url: value}}.
    """
    out: dict = {}
    prefix = "TOPHOSTS__"
    for key, value in env.items():
        if key.startswith(prefix):
            path = key[len(prefix):].split("__")
            current = out
            for segment in path[:-1]:
                current = current.setdefault(segment, {})
            current[path[-1]] = value
    return out

def deep_set(d: dict, dotted: str, value: Any) -> None:
    """Set a value in a nested dictionary using dot notation."""
    current = d
    parts = dotted.split('.')
    for key in parts[:-1]:
        current = current.setdefault(key, {})
    current[parts[-1]] = value

def merge_overrides(
    cfg: dict,
    *,
    vars_file: Path | None,
    set_kv: list[str],
    env: dict[str, str]
) -> dict:
    """Merge configuration overrides from multiple sources.

    Applies overrides in order:
    1. Base configuration
    2. Variables file (--vars-file)
    3. Key-value pairs (--set), values parsed as YAML scalars
    4. Environment variables (TOPHOSTS__)

    Raises:
        SystemExit: If --set parameter is malformed
    """
    merged = dict(cfg)
    if vars_file and vars_file.exists():
        merged = deep_merge(merged, yaml.safe_load(vars_file.read_text()) or {})
    for item in set_kv:
        if "=" not in item:
            raise SystemExit("--set expects key=value")
        key, value = item.split('=', 1)
        deep_set(merged, key, yaml.safe_load(value) if value else value)
    return deep_merge(merged, env_to_overrides(env))

def _resolve_token(token: str, ask: bool) -> str:
    """Resolve a secret placeholder: ${env:VAR}, ${file:/path} or a prompt."""
    if token.startswith('${env:') and token.endswith('}'):
        return os.environ.get(token[6:-1], '')
    if token.startswith('${file:') and token.endswith('}'):
        return Path(token[7:-1]).read_text().strip()
    return token if not ask else input(f"Enter secret for {token}: ")

def _walk(obj: Any, ask: bool) -> Any:
    if isinstance(obj, dict):
        return {k: _walk(v, ask) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk(x, ask) for x in obj]
    if isinstance(obj, str) and obj.startswith('${'):
        return _resolve_token(obj, ask)
    return obj

def resolve_secrets(cfg: dict, *, ask: bool) -> dict:
    """Resolve secret placeholders such as ${env:VAR} or ${file:/path} in configuration."""
    return _walk(cfg, ask)

def _default_template_path() -> Optional[Path]:
    for directory in _candidate_config_dirs():
        path = directory / "tophosts.yaml.default"
        if path.exists() and path.is_file():
            return path
    return None


def load_default_template() -> Dict[str, Any]:
    """Load the default configuration template.

    Looks for tophosts.yaml.default in the configuration directories and
    falls back to the built-in template.
    """
    return yaml.safe_load(default_template_text()) or {}


def default_template_text() -> str:
    path = _default_template_path()
    if path is not None:
        return path.read_text()
    return _DEFAULT_TEMPLATE_YAML.lstrip()
