"""
qlsp.config - Server configuration

ServerConfig holds the settings a server process needs before it starts
reading from the client. Values come from the environment and can be
overridden by command-line flags:

    QLSP_LOG=/tmp/qlsp.log    record every JSON-RPC message to this file
    QLSP_QUIET=1              do not write diagnostics to stderr
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

DEFAULT_NAME = "qlsp"
DEFAULT_VERSION = "0.1.0"

ENV_LOG = "QLSP_LOG"
ENV_QUIET = "QLSP_QUIET"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """
    Settings for one server process.

    Fields:
        name: Server name reported in the initialize result
        version: Server version reported in the initialize result
        log_path: File receiving the raw message log (None: no log file)
        quiet: Suppress diagnostics on stderr
    """

    name: str = DEFAULT_NAME
    version: str = DEFAULT_VERSION
    log_path: Optional[str] = None
    quiet: bool = False

    @classmethod
    def load(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "ServerConfig":
        """
        Build a configuration from the environment.

        Args:
            environ: Environment mapping (default: os.environ).
            **overrides: Field values that win over the environment.
                None values are ignored so unset CLI flags fall through.

        Raises:
            TypeError: If an override names an unknown field.
        """
        if environ is None:
            environ = os.environ

        config = cls(
            log_path=environ.get(ENV_LOG) or None,
            quiet=environ.get(ENV_QUIET, "").strip().lower() in _TRUE_VALUES,
        )

        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **overrides)
