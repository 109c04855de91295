import os
import logging
import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def base_url_from_env() -> str:
    """Return ``https://<YIELD_SOURCE_BASE_FQDN>``.

    Raises
    ------
    RuntimeError
        If ``YIELD_SOURCE_BASE_FQDN`` is not set.
    """
    fqdn = os.environ.get("YIELD_SOURCE_BASE_FQDN")
    if not fqdn:
        raise RuntimeError("Environment variable 'YIELD_SOURCE_BASE_FQDN' is not set")
    return "https://" + fqdn


def open_session() -> requests.Session:
    """Open an authenticated requests session to the yield-source relay.

    The relay signs and submits venue calls on behalf of the pool; every
    request carries the ``YIELD_SOURCE_API_KEY`` bearer key.

    Returns
    -------
    requests.Session
        Session with authentication headers installed, verified against the
        relay health endpoint.

    Raises
    ------
    RuntimeError
        If the environment is incomplete or the relay cannot be reached.
        Any underlying exception is re-raised as a ``RuntimeError`` with
        context.
    """
    url = base_url_from_env()
    api_key = os.environ.get("YIELD_SOURCE_API_KEY")
    if not api_key:
        raise RuntimeError("Environment variable 'YIELD_SOURCE_API_KEY' is not set")

    session = requests.Session()
    session.headers.update(
        {"Accept": "application/json", "Authorization": f"Bearer {api_key}"}
    )
    try:
        response = session.get(url + "/api/v1/health")
        response.raise_for_status()
        # Never log the API key.
        logger.debug("Yield-source relay session established")
        return session
    except Exception as e:
        session.close()
        logger.critical(f"Error occurred while starting yield-source session: {e}")
        raise RuntimeError(f"Failed to establish session: {e}") from e
