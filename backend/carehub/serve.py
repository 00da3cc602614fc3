# backend/carehub/serve.py
"""
Uvicorn launcher for the CareHub API.

    python -m carehub.serve

Everything is driven by env so the same entrypoint serves local dev
(RELOAD=1) and production behind a proxy (FORWARDED_ALLOW_IPS, SSL_*).
"""

import os
from typing import Any, Dict

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}

_SSL_ENV = {
    "ssl_certfile": "SSL_CERTFILE",
    "ssl_keyfile": "SSL_KEYFILE",
    "ssl_ca_certs": "SSL_CA_CERTS",
    "ssl_keyfile_password": "SSL_KEYFILE_PASSWORD",
}


def _ssl_options() -> Dict[str, str]:
    return {option: os.environ[name] for option, name in _SSL_ENV.items() if os.getenv(name)}


def server_options() -> Dict[str, Any]:
    reload_enabled = os.getenv("RELOAD", "false").strip().lower() in _TRUTHY
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": reload_enabled,
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
    }
    if not reload_enabled:
        options["workers"] = max(int(os.getenv("WEB_CONCURRENCY", "1")), 1)
    options.update(_ssl_options())
    return options


def main() -> None:
    uvicorn.run("carehub.main:app", **server_options())


if __name__ == "__main__":
    main()
