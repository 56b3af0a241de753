"""
Chart-of-accounts configuration schema.

The human-authored settings, parsed from YAML by the loader into these
frozen dataclasses.  Values stay primitive (strings, ints, tuples);
``coa_config.bridges`` turns them into kernel objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecimalSettings:
    """Scale and rounding used for every monetary result."""

    precision: int = 2
    rounding: str = "ROUND_HALF_UP"
    max_mantissa_digits: int = 38


@dataclass(frozen=True)
class HierarchySettings:
    default_currency: str = "USD"
    max_tree_depth: int = 32
    max_code_retries: int = 3


@dataclass(frozen=True)
class CodeBandDef:
    start: int
    end: int


@dataclass(frozen=True)
class CodeSettings:
    """Code generation: widths, step and numeric bands."""

    width: int = 4
    increment: int = 1
    parent_prefix_digits: int = 2
    type_bands: tuple[tuple[str, CodeBandDef], ...] = ()
    sub_type_bands: tuple[tuple[str, CodeBandDef], ...] = ()


@dataclass(frozen=True)
class CoaSettings:
    """Root settings object for one configuration set."""

    config_id: str
    version: int
    decimal: DecimalSettings = field(default_factory=DecimalSettings)
    hierarchy: HierarchySettings = field(default_factory=HierarchySettings)
    codes: CodeSettings = field(default_factory=CodeSettings)


# ---------------------------------------------------------------------------
# Chart templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChartAccountDef:
    """One account of a template chart."""

    code: str
    name: str
    account_type: str
    sub_type: str
    parent_code: str | None = None
    is_control_account: bool = False
    allow_direct_transactions: bool = True
    description: str | None = None


@dataclass(frozen=True)
class ChartTemplate:
    name: str
    version: int
    accounts: tuple[ChartAccountDef, ...] = ()
