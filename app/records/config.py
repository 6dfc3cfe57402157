"""Configuration constants for the public-records batch crawler."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("RECORDS_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
EXPORTS_DIR: Path = Path(os.getenv("EXPORTS_DIR", str(DATA_DIR / "exports")))
EXPORTS_KEEP_MAX: int = int(os.getenv("EXPORTS_KEEP_MAX", "50"))

PORTAL_HOST: str = os.getenv("PORTAL_HOST", "consultapublica.duquedecaxias.rj.gov.br")
PORTAL_PORT: int = int(os.getenv("PORTAL_PORT", "8004"))
PORTAL_ORIGIN: str = f"http://{PORTAL_HOST}:{PORTAL_PORT}"
BASE_URL: str = f"{PORTAL_ORIGIN}/consultapublica"

SESSION_PATH: str = "index.php?class=ProcProcessoForm"
QUERY_PATH: str = "engine.php?class=ProcProcessoFormConsultar&method=onEdit"
QUERY_FORM_CLASS: str = "ProcProcessoFormConsultar"
QUERY_FORM_METHOD: str = "onEdit"
RESULTS_TABLE_ID: str = "proc_movimento_PROCESSO_list"


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 1) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Session establishment is cheap; the query itself can be slow under load.
SESSION_TIMEOUT_SECONDS: float = _parse_timeout_seconds("RECORDS_SESSION_TIMEOUT_SECONDS", 15)
QUERY_TIMEOUT_SECONDS: float = _parse_timeout_seconds("RECORDS_QUERY_TIMEOUT_SECONDS", 25)

# Sliding window size for in-flight fetches.
BATCH_CONCURRENCY: int = int(os.getenv("RECORDS_BATCH_CONCURRENCY", "20"))
# Consecutive connection failures that declare the portal offline.
OUTAGE_THRESHOLD: int = int(os.getenv("RECORDS_OUTAGE_THRESHOLD", "3"))

DEFAULT_RANGE_START: int = 1
DEFAULT_RANGE_END: int = 1000

SSE_KEEPALIVE_SECONDS: float = float(os.getenv("SSE_KEEPALIVE_SECONDS", "15"))

PORTAL_HEADERS: dict[str, str] = {
    "Host": PORTAL_HOST,
    "Content-Type": "application/x-www-form-urlencoded",
    "X-Requested-With": "XMLHttpRequest",
    "Origin": PORTAL_ORIGIN,
    "Referer": f"{BASE_URL}/{SESSION_PATH}",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
    ),
}


def session_url() -> str:
    """Return the URL that hands out a portal session cookie."""

    return f"{BASE_URL}/{SESSION_PATH}"


def query_url() -> str:
    """Return the URL that answers process lookups."""

    return f"{BASE_URL}/{QUERY_PATH}"
