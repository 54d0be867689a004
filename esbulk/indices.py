"""Index lifecycle requests: create, delete, mapping, settings and flush."""
import json
import logging
import os
from typing import Any

from elasticsearch.exceptions import ApiError, NotFoundError, TransportError

from esbulk.es_client import response_status
from esbulk.exceptions import ConfigurationError, SetupError
from esbulk.options import Options

logger = logging.getLogger(__name__)

REFRESH_DISABLED = {"index": {"refresh_interval": "-1"}}
REFRESH_RESTORED = {"index": {"refresh_interval": "1s"}}
ZERO_REPLICAS = {"index": {"number_of_replicas": 0}}
# null resets the override to the cluster default.
REPLICAS_RESTORED = {"index": {"number_of_replicas": None}}

REQUEST_ERRORS = (ApiError, TransportError)


def resolve_mapping(value: str) -> dict:
    """Return the mapping named by value: the contents of a file if it exists, else value itself."""
    if os.path.exists(value):
        with open(value, "r", encoding="utf-8") as f:
            text = f.read()
        source = value
    else:
        text = value
        source = "mapping string"
    try:
        mapping = json.loads(text)
    except ValueError as e:
        raise ConfigurationError(f"invalid mapping JSON in {source}: {e}") from e
    if not isinstance(mapping, dict):
        raise ConfigurationError(f"mapping in {source} must be a JSON object")
    return mapping


def delete_index(client: Any, options: Options) -> None:
    try:
        client.indices.delete(index=options.index)
        logger.info("%s: deleted", options.index)
    except NotFoundError:
        logger.info("%s: nothing to purge", options.index)
    except REQUEST_ERRORS as e:
        raise SetupError("purge", f"cannot delete index {options.index}: {e}") from e


def create_index(client: Any, options: Options) -> None:
    """Create the index; an existing index is left as is."""
    try:
        client.indices.create(index=options.index)
        logger.info("%s: created", options.index)
    except ApiError as e:
        if "resource_already_exists" not in str(e).lower():
            raise SetupError("create index", f"cannot create index {options.index}: {e}") from e
        logger.info("%s: exists", options.index)
    except TransportError as e:
        raise SetupError("create index", f"cannot create index {options.index}: {e}") from e


def put_mapping(client: Any, options: Options, mapping: dict) -> None:
    try:
        resp = client.indices.put_mapping(index=options.index, body=mapping)
    except REQUEST_ERRORS as e:
        raise SetupError("apply mapping", f"cannot apply mapping to {options.index}: {e}") from e
    if options.verbose:
        logger.info("applied mapping with status %s", response_status(resp))


def put_settings(client: Any, options: Options, settings: dict) -> None:
    """Apply index settings, e.g. {"index": {"refresh_interval": "1s"}}. Raises on any failure."""
    resp = client.indices.put_settings(index=options.index, settings=settings)
    if options.verbose:
        logger.info("applied setting: %s with status %s", json.dumps(settings), response_status(resp))


def flush_index(client: Any, options: Options) -> None:
    resp = client.indices.flush(index=options.index)
    if options.verbose:
        logger.info("index flushed: %s", response_status(resp))
