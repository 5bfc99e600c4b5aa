"""Populate os.environ from .env files without overriding values already set.

Run `python -m learnai.set_env_vars` to print which settings are present.
"""
from __future__ import annotations

import json
import logging
import os
import pathlib

logger = logging.getLogger(__name__)

KNOWN_KEYS = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_MODEL",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "LLM_PROVIDER",
    "LLM_MAX_ATTEMPTS",
    "LLM_TIMEOUT_S",
    "EXAM_REQUEST_DELAY_S",
    "MONGO_URI",
    "MONGO_DB",
    "MONGO_TRANSACTIONS",
)


def _parse_dotenv(content: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        key = k.strip()
        val = v.strip()
        if not key:
            continue
        if len(val) >= 2 and ((val[0] == val[-1] == '"') or (val[0] == val[-1] == "'")):
            val = val[1:-1]
        out[key] = val
    return out


def _load_dotenv_file(path: pathlib.Path) -> dict[str, str]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return {}
    return _parse_dotenv(content)


def _resolve_repo_root() -> pathlib.Path:
    here = pathlib.Path(__file__).resolve()
    return here.parent.parent


def _coalesce_env(primary: str, aliases: list[str]) -> str | None:
    v = os.environ.get(primary)
    if v:
        return v
    for a in aliases:
        v2 = os.environ.get(a)
        if v2:
            return v2
    return None


def initialize_env_vars(
    *,
    dotenv_paths: list[str] | None = None,
    override_existing: bool = False,
) -> dict[str, bool]:
    repo_root = _resolve_repo_root()
    candidates = [repo_root / ".env", repo_root / ".env.local"]
    if dotenv_paths:
        candidates = [pathlib.Path(p).expanduser().resolve() for p in dotenv_paths] + candidates

    loaded: dict[str, str] = {}
    for p in candidates:
        loaded.update(_load_dotenv_file(p))

    def set_env(k: str, v: str | None) -> None:
        if v is None or v == "":
            return
        if not override_existing and os.environ.get(k):
            return
        os.environ[k] = v

    for k, v in loaded.items():
        if k in KNOWN_KEYS:
            set_env(k, v)

    g = _coalesce_env("GEMINI_API_KEY", ["GOOGLE_API_KEY"])
    if g:
        set_env("GEMINI_API_KEY", g)
        set_env("GOOGLE_API_KEY", g)

    return {
        "gemini_api_key_set": bool(_coalesce_env("GEMINI_API_KEY", ["GOOGLE_API_KEY"])),
        "groq_api_key_set": bool(_coalesce_env("GROQ_API_KEY", [])),
        "mongo_uri_set": bool(_coalesce_env("MONGO_URI", [])),
        "mongo_db_set": bool(_coalesce_env("MONGO_DB", [])),
    }


def _main() -> None:
    status = initialize_env_vars()
    print(json.dumps(status, indent=2))


if __name__ == "__main__":
    _main()
