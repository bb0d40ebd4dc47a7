"""Middleware discovery via entry points

Middleware classes are published under the `conduit.middleware` entry point
group, so hosts such as the CLI can build pipelines from names. Built-in
middleware is registered the same way in this package's pyproject.toml:

    [project.entry-points."conduit.middleware"]
    lower = "conduit.middleware.builtin:ToLowerMiddleware"

Usage:
    # All discovered middleware
    middleware = get_middleware()  # {'lower': ToLowerMiddleware, ...}

    # A specific class
    cls = get_middleware_class('upper')
    pipeline.use(cls)
"""

import importlib.metadata
import logging

logger = logging.getLogger(__name__)

MIDDLEWARE_GROUP = 'conduit.middleware'

# Cache for loaded middleware: {name: class}
_middleware_cache: dict[str, type] | None = None

# Manually registered middleware, kept across rediscovery
_registered: dict[str, type] = {}


def discover_middleware(allowed: list[str] | None = None) -> dict[str, type]:
    """Discover middleware classes from the entry point group

    Args:
        allowed: Optional whitelist of entry point names; None loads all

    Returns:
        Dictionary mapping middleware names to classes

    Note:
        Entry points whose module cannot be imported are skipped.
    """
    middleware = {}

    try:
        eps = importlib.metadata.entry_points(group=MIDDLEWARE_GROUP)
        for ep in eps:
            if allowed is not None and ep.name not in allowed:
                logger.debug(f"Skipping middleware {ep.name}: not in whitelist")
                continue
            try:
                middleware[ep.name] = ep.load()
                logger.debug(f"Discovered middleware: {ep.name}")
            except ImportError as e:
                logger.debug(f"Skipping middleware {ep.name}: missing dependency - {e}")
            except Exception as e:
                logger.warning(f"Failed to load middleware {ep.name}: {e}")

    except Exception as e:
        logger.warning(f"Failed to discover middleware for {MIDDLEWARE_GROUP}: {e}")

    return middleware


def get_middleware(allowed: list[str] | None = None) -> dict[str, type]:
    """Get all discovered middleware, plus manually registered classes

    The first call performs discovery; later calls are served from cache
    until reset() is called.

    Args:
        allowed: Whitelist applied on first discovery (see Settings.middleware_plugins)
    """
    global _middleware_cache
    if _middleware_cache is None:
        _middleware_cache = discover_middleware(allowed)
    return {**_middleware_cache, **_registered}


def get_middleware_class(name: str, allowed: list[str] | None = None) -> type | None:
    """Get a middleware class by name, or None if not found"""
    return get_middleware(allowed).get(name)


def get_available_middleware(allowed: list[str] | None = None) -> list[str]:
    """Get sorted list of available middleware names"""
    return sorted(get_middleware(allowed))


def register_middleware(name: str, middleware_class: type) -> None:
    """Manually register a middleware class

    Registered classes take precedence over discovered ones with the same name.

    Example:
        >>> register_middleware('recording', RecordingMiddleware)
    """
    _registered[name] = middleware_class
    logger.debug(f"Manually registered middleware: {name}")


def reset() -> None:
    """Reset discovery cache and manual registrations

    For testing purposes. Middleware is rediscovered on next access.
    """
    global _middleware_cache
    _middleware_cache = None
    _registered.clear()
    logger.debug("Middleware discovery cache reset")
