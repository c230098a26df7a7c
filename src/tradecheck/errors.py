# TradeCheck - KPI calculation & consistency checks for trade businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exception hierarchy for TradeCheck.

Only configuration defects are modelled as exceptions. Missing client data
is the expected common case and is represented as an absent value, never
raised.
"""


class TradeCheckError(Exception):
    """Base class for all TradeCheck errors."""


class DefinitionError(TradeCheckError):
    """A metric or rule definition is structurally invalid."""


class FormulaError(TradeCheckError):
    """A metric formula cannot be parsed or dispatched."""


class RuleError(TradeCheckError):
    """A validation rule formula cannot be parsed."""


class ValueStoreError(TradeCheckError):
    """An identifier was written twice to the same value store."""
