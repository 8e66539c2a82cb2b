"""Scenario scripts: the DSL models, action registry and result records.

The service lives in :mod:`scenario.service`; it is not imported here because it
depends on :mod:`runner`, which itself imports the DSL from this package.
"""

from .dsl import models, registry

__all__ = ["registry", "models"]
