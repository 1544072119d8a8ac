"""Package-wide configuration for the graphcodec codecs.

Codecs accept their options as keyword arguments. For applications that want
one place to configure serialization behavior, a frozen settings object can be
installed globally and used with the ``from_settings()`` constructors of the
codecs.

Settings may also be read from the process environment. Recognized variables
are ``GRAPHCODEC_<FIELD>`` for each boolean field of GraphCodecSettings, e.g.
``GRAPHCODEC_DEEP_SERIALIZATION=1``.
"""
from __future__ import annotations

__all__ = ['GraphCodecSettings', 'get_global_settings', 'set_global_settings']

import dataclasses
import logging
import os
import threading
import typing

logger = logging.getLogger(__name__)
logger.debug('Importing {}'.format(__name__))

ENVIRONMENT_PREFIX = 'GRAPHCODEC_'

_TRUE_STRINGS = frozenset(('1', 'true', 'yes', 'on'))
_FALSE_STRINGS = frozenset(('0', 'false', 'no', 'off', ''))

_GLOBAL_SETTINGS: typing.Optional['GraphCodecSettings'] = None
_SETTINGS_LOCK = threading.RLock()


@dataclasses.dataclass(frozen=True)
class GraphCodecSettings:
    """Configuration settings for graphcodec."""

    deep_serialization: bool = False
    """Expand nested composites and collections recursively in the tree format."""

    primary_properties_only: bool = False
    """Expand collection-valued properties in the tree format even without deep serialization."""

    save_root_type: bool = True
    """Write the type of the root object in the tree format.

    If False, the root type is only written for arrays, and readers must supply the root type.
    """

    use_type_dictionary: bool = False
    """Emit a type dictionary and refer to types by short keys in the tree format."""

    ignore_creation_errors: bool = False
    """Resolve properties to None instead of raising when an instance cannot be created."""

    @classmethod
    def from_environ(cls, environ: typing.Mapping[str, str] = None,
                     prefix: str = ENVIRONMENT_PREFIX) -> 'GraphCodecSettings':
        """Read settings from environment variables.

        Unset variables keep their default values.

        Raises:
            ValueError if a variable is set to a value that is not recognizable as a boolean.
        """
        if environ is None:
            environ = os.environ
        values = {}
        for field in dataclasses.fields(cls):
            key = prefix + field.name.upper()
            if key not in environ:
                continue
            text = environ[key].strip().lower()
            if text in _TRUE_STRINGS:
                values[field.name] = True
            elif text in _FALSE_STRINGS:
                values[field.name] = False
            else:
                raise ValueError('Cannot interpret {}={!r} as a boolean.'.format(key, environ[key]))
            logger.debug('Setting {} from environment variable {}.'.format(field.name, key))
        return cls(**values)


def get_global_settings() -> GraphCodecSettings:
    """Get the global graphcodec settings instance (thread-safe).

    If no global settings have been set, returns a default instance.
    """
    global _GLOBAL_SETTINGS
    with _SETTINGS_LOCK:
        if _GLOBAL_SETTINGS is None:
            _GLOBAL_SETTINGS = GraphCodecSettings()
        return _GLOBAL_SETTINGS


def set_global_settings(settings: GraphCodecSettings) -> None:
    """Set the global graphcodec settings instance (thread-safe).

    Codecs read settings when they are constructed with ``from_settings()``,
    so changes do not affect codec instances that already exist.
    """
    global _GLOBAL_SETTINGS
    if not isinstance(settings, GraphCodecSettings):
        raise TypeError('Expected a GraphCodecSettings instance. Got {!r}.'.format(settings))
    with _SETTINGS_LOCK:
        _GLOBAL_SETTINGS = settings
