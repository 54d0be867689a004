"""Elasticsearch client configured from the environment and session options."""
import os
from typing import Any

from dotenv import load_dotenv
from elasticsearch import Elasticsearch

from esbulk.options import Options

load_dotenv()

ES_URL = (os.getenv("ES_URL") or "http://localhost:9200").strip()
ES_USERNAME = os.getenv("ES_USERNAME", "")
ES_PASSWORD = os.getenv("ES_PASSWORD", "")
ES_API_KEY = (os.getenv("ES_API_KEY") or "").strip()
ES_VERIFY_TLS = os.getenv("ES_VERIFY_TLS", "true").lower() in ("true", "1", "yes")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


ES_REQUEST_TIMEOUT = _int_env("ES_REQUEST_TIMEOUT", 60)
# Failed batches are never resent, so transport retries are off unless asked for.
ES_MAX_RETRIES = _int_env("ES_MAX_RETRIES", 0)


def get_client(options: Options) -> Elasticsearch:
    """Return a client for options.server_url, shared by all writers of one session."""
    kwargs = {
        "request_timeout": ES_REQUEST_TIMEOUT,
        "max_retries": ES_MAX_RETRIES,
        "retry_on_timeout": ES_MAX_RETRIES > 0,
        # One pooled connection per writer plus one for the orchestrator.
        "connections_per_node": options.num_workers + 1,
    }
    if options.scheme == "https":
        kwargs["verify_certs"] = ES_VERIFY_TLS
    if options.has_basic_auth:
        kwargs["basic_auth"] = (options.username, options.password)
    elif ES_API_KEY:
        kwargs["api_key"] = ES_API_KEY
    return Elasticsearch(options.server_url, **kwargs)


def response_status(resp: Any) -> str:
    """HTTP status of a client response, or "" for plain dict bodies."""
    meta = getattr(resp, "meta", None)
    return str(getattr(meta, "status", "")) if meta is not None else ""
