from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple, Dict

from order_tracking_status.models import EnvCfg

try:
    # De facto standard for .env files
    from dotenv import load_dotenv, find_dotenv  # type: ignore
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency 'python-dotenv'. Install it with:\n"
        "  pip install python-dotenv"
    ) from e


# --- Public contract ---------------------------------------------------------

class EnvError(RuntimeError):
    """Raised when required environment variables are missing or malformed."""


# Only enforced with strict=True; the tracker runs without a provider key
REQUIRED_KEYS: Tuple[str, ...] = (
    "SHIPDAY_API_KEY",
)

_FLOAT_KEYS: Tuple[str, ...] = (
    "PROVIDER_TIMEOUT_SECONDS",
    "TRACKING_DEADLINE_SECONDS",
    "ON_TIME_TOLERANCE_MINUTES",
    "DEFAULT_DELIVERY_FEE",
)


def load_project_dotenv(start: Optional[Path] = None, *, override: bool = False) -> Path:
    """
    Load variables from the nearest `.env` file (searching upward from `start` or CWD).
    Does NOT override existing env vars unless `override=True`.
    Returns the resolved Path to the .env file if found; otherwise Path().
    """
    start_path = Path.cwd() if start is None else Path(start)

    dotenv_str = find_dotenv(filename=".env", usecwd=True)
    dotenv_path = Path(dotenv_str) if dotenv_str else Path()

    # python-dotenv found nothing: walk up from `start` ourselves
    if not dotenv_str:
        for p in (start_path, *start_path.parents):
            candidate = p / ".env"
            if candidate.exists():
                dotenv_path = candidate
                break

    if not dotenv_path.exists() or dotenv_path.is_dir():
        return Path()

    load_dotenv(dotenv_path=dotenv_path, override=override)
    return dotenv_path.resolve()


def env(name: str, *, default=None, required: bool = False, cast=None):
    """
    Test-friendly accessor.

    - If `required=True` and var is missing, raise KeyError(name).
    - If `cast` is provided, apply it to the raw string and propagate cast errors.
    - Returns `default` when missing (or blank) and not required.
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        if required:
            raise KeyError(name)
        return default

    if cast is not None:
        return cast(raw)
    return raw


# --- Internal helpers --------------------------------------------------------

def _parse_dotenv_lines(text: str) -> Dict[str, str]:
    """
    Parse .env-style content into a dict. Supports:
    - leading 'export '
    - inline comments after a value ('value # comment')
    - quoted values
    - blank lines and full-line comments
    """
    out: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        # only strip comments preceded by a space; API keys may contain '#'
        if " #" in v:
            v = v.split(" #", 1)[0]
        v = v.strip().strip('"').strip("'")
        out[k.strip()] = v
    return out


def _float_env(name: str, default: float) -> float:
    try:
        return float(env(name, default=default, cast=float))
    except ValueError as e:
        raise EnvError(
            f"Environment variable {name} must be numeric, got {os.getenv(name)!r}") from e


# --- Main loader APIs --------------------------------------------------------

def load_env(
    dotenv_path: Optional[Path] = None,
    *,
    override: bool = False,
    required_keys: Tuple[str, ...] = (),
    strict: bool = False,
) -> Dict[str, str]:
    """
    Load env vars from a .env file into the process environment and return a dict
    of key/value pairs found in that file.

    - If `dotenv_path` is provided, load exactly that file.
    - Otherwise, auto-discover the nearest .env via `load_project_dotenv`.
    - If `strict=True` and `required_keys` are provided, ensure they are present
      in `os.environ` after loading; otherwise raise EnvError.
    - `override` controls whether .env values replace existing process env values.
    """
    loaded: Dict[str, str] = {}

    if dotenv_path:
        path = Path(dotenv_path)
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
            loaded = _parse_dotenv_lines(path.read_text(encoding="utf-8"))
    else:
        path = load_project_dotenv(override=override)
        if path and path.exists():
            loaded = _parse_dotenv_lines(path.read_text(encoding="utf-8"))

    if strict and required_keys:
        missing = [k for k in required_keys if not os.getenv(k)]
        if missing:
            raise EnvError(
                f"Missing required environment variable(s): {', '.join(missing)}")

    return loaded


def get_app_env(dotenv_path: Path | str | None = ".env", *, strict: bool = False) -> EnvCfg:
    """
    Load application variables and return a typed config object.

    - `dotenv_path` may be a Path/str pointing to a specific .env file or None to
      auto-discover the nearest one.
    - Existing process env is preferred over file values.
    - With `strict=True` a missing SHIPDAY_API_KEY raises EnvError; otherwise
      an empty key simply disables the live provider call.
    """
    load_env(
        Path(dotenv_path) if dotenv_path else None,
        override=False,
        required_keys=REQUIRED_KEYS,
        strict=strict,
    )

    defaults = EnvCfg()
    return EnvCfg(
        SHIPDAY_API_KEY=env("SHIPDAY_API_KEY", default="") or "",
        SHIPDAY_BASE_URL=env("SHIPDAY_BASE_URL",
                             default=defaults.SHIPDAY_BASE_URL),
        PROVIDER_TIMEOUT_SECONDS=_float_env(
            "PROVIDER_TIMEOUT_SECONDS", defaults.PROVIDER_TIMEOUT_SECONDS),
        TRACKING_DEADLINE_SECONDS=_float_env(
            "TRACKING_DEADLINE_SECONDS", defaults.TRACKING_DEADLINE_SECONDS),
        ON_TIME_TOLERANCE_MINUTES=_float_env(
            "ON_TIME_TOLERANCE_MINUTES", defaults.ON_TIME_TOLERANCE_MINUTES),
        DEFAULT_DELIVERY_FEE=_float_env(
            "DEFAULT_DELIVERY_FEE", defaults.DEFAULT_DELIVERY_FEE),
        MONGODB_URI=env("MONGODB_URI", default=defaults.MONGODB_URI),
        MONGODB_DB=env("MONGODB_DB", default=defaults.MONGODB_DB),
    )


__all__ = [
    "EnvError",
    "REQUIRED_KEYS",
    "load_project_dotenv",
    "load_env",
    "env",
    "get_app_env",
]
