"""
Run the stock ledger API under uvicorn.

    python -m stockledger.serve

HOST, PORT, RELOAD, LOG_LEVEL, WEB_CONCURRENCY, FORWARDED_ALLOW_IPS and the
SSL_* variables are read from the environment.
"""

import os
from typing import Any, Dict

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}

_SSL_ENV = {
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
    "SSL_CA_CERTS": "ssl_ca_certs",
    "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
}


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def _ssl_options() -> Dict[str, str]:
    return {option: os.environ[env] for env, option in _SSL_ENV.items() if os.getenv(env)}


def uvicorn_options() -> Dict[str, Any]:
    reload_enabled = _env_flag("RELOAD")
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": reload_enabled,
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
    }
    # uvicorn ignores workers when reload is on.
    workers = os.getenv("WEB_CONCURRENCY")
    if workers and not reload_enabled:
        options["workers"] = int(workers)
    options.update(_ssl_options())
    return options


def main() -> None:
    uvicorn.run("stockledger.main:app", **uvicorn_options())


if __name__ == "__main__":
    main()
