"""基础配置与环境变量加载器，支持 .env 文件与系统环境并存."""
from __future__ import annotations

import os
from pathlib import Path

_PACKAGE_ROOT = Path(__file__).resolve().parent
REPO_ROOT = _PACKAGE_ROOT.parents[1]
_ENV_PATH = _PACKAGE_ROOT.parent / ".env"

ALLOWED_STORE_MODES = frozenset({"kuzu", "memory"})


def _load_env_file(path: Path = _ENV_PATH) -> None:
    """读取 .env 文件到 os.environ，不覆盖已存在的环境变量."""
    if not path.exists():
        return
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _get_int(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


AUTOSAVE_DEBOUNCE_MS: int = _get_int("AUTOSAVE_DEBOUNCE_MS", 2000, minimum=1)
MEMORY_STORE_LATENCY_MS: int = _get_int("MEMORY_STORE_LATENCY_MS", 0, minimum=0)
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def require_store_mode() -> str:
    raw = os.getenv("STORYFLOW_STORE")
    if raw is None:
        raise RuntimeError(
            "STORYFLOW_STORE 未配置：必须显式设置为 kuzu/memory（例如：STORYFLOW_STORE=kuzu）。"
        )
    mode = raw.strip().lower()
    if mode not in ALLOWED_STORE_MODES:
        raise RuntimeError(f"STORYFLOW_STORE={raw!r} 非法：必须为 kuzu/memory。")
    return mode


def resolve_kuzu_db_path() -> Path:
    env_path = os.getenv("KUZU_DB_PATH")
    if not env_path:
        return REPO_ROOT / "backend" / "data" / "storyflow.db"
    candidate = Path(env_path)
    return candidate if candidate.is_absolute() else REPO_ROOT / candidate
