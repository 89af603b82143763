"""Parser configuration.

``ParserConfig`` bundles the knobs of
:class:`~fcs_endpoint_api.description_parser.EndpointDescriptionParser`:

* ``max_depth``: how deep nested ``<Resources>`` blocks are parsed. Top level
  resources are always parsed; sub-resources at nesting depth ``k`` are kept
  only if ``k < max_depth``. :data:`UNBOUNDED_DEPTH` disables the limit.
* ``strategy``: streaming single pass or whole-document with path queries.
* ``strict_resource_declarations``: whether a resource lacking
  ``<AvailableLayers>`` (with advanced-search) or ``<AvailableLexFields>``
  (with lex-search) is fatal. ``None`` selects the strategy default, strict
  for streaming and lenient for whole-document parsing.

Configuration can also be read from the ``FCS_PARSER_CONFIG`` environment
variable as comma separated ``key=value`` pairs, e.g.
``FCS_PARSER_CONFIG="max_depth=2,strategy=streaming,strict_resource_declarations=true"``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

UNBOUNDED_DEPTH = -1
CONFIG_ENV_VAR = "FCS_PARSER_CONFIG"


class ParsingStrategy(str, Enum):
    STREAMING = "streaming"
    DOCUMENT = "document"


@dataclass
class ParserConfig:
    """Configuration for endpoint description parsing.

    Args:
        max_depth: Maximum resource nesting depth to parse, or
            :data:`UNBOUNDED_DEPTH`.
        strategy: Parsing strategy (enum member or its string value).
        strict_resource_declarations: Override the strategy default for
            missing per-resource layer/lex field declarations.
    """

    max_depth: int = UNBOUNDED_DEPTH
    strategy: ParsingStrategy = ParsingStrategy.DOCUMENT
    strict_resource_declarations: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.max_depth < UNBOUNDED_DEPTH:
            raise ValueError(
                f"max_depth must be non-negative or {UNBOUNDED_DEPTH}, got {self.max_depth}"
            )
        try:
            self.strategy = ParsingStrategy(self.strategy)
        except ValueError:
            choices = ", ".join(s.value for s in ParsingStrategy)
            raise ValueError(
                f"unknown strategy '{self.strategy}' (expected one of: {choices})"
            ) from None

    @property
    def unbounded(self) -> bool:
        return self.max_depth == UNBOUNDED_DEPTH

    @property
    def require_resource_declarations(self) -> bool:
        if self.strict_resource_declarations is not None:
            return self.strict_resource_declarations
        return self.strategy is ParsingStrategy.STREAMING

    def to_dict(self) -> dict:
        return {
            "max_depth": self.max_depth,
            "strategy": self.strategy.value,
            "strict_resource_declarations": self.strict_resource_declarations,
            "require_resource_declarations": self.require_resource_declarations,
        }

    @classmethod
    def from_env(cls, env_var: str = CONFIG_ENV_VAR) -> "ParserConfig":
        """Build a configuration from ``key=value`` pairs in ``env_var``.

        Unknown keys are ignored; malformed values raise ``ValueError``.
        """
        config_str = os.getenv(env_var, "")
        config = cls()

        if config_str:
            for pair in config_str.split(","):
                if "=" in pair:
                    key, value = pair.split("=", 1)
                    key = key.strip()
                    value = value.strip()
                    if key == "max_depth":
                        config.max_depth = int(value)
                    elif key == "strategy":
                        config.strategy = value.lower()
                    elif key == "strict_resource_declarations":
                        config.strict_resource_declarations = (
                            None if value.lower() in ("", "none") else value.lower() == "true"
                        )

        # re-run validation on the assembled values
        config.__post_init__()
        return config
