"""
Configuration Loader (``coa_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``coa_config.schema``, validating every value on the way in.

Architecture position
---------------------
**Config layer**.  Consumed by ``coa_config.load_settings`` and
``coa_config.load_chart_template``.  Depends on the kernel only for its
enumerations and its ConfigurationError.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown account types, sub-types and rounding modes are rejected.
* Code bands are well-formed, and every account type has one.
* A chart template lists parents before children, with unique codes and
  parent/child type agreement.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Invalid or missing values  -> ``ConfigurationError`` naming the key.
"""

from __future__ import annotations

from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
)
from pathlib import Path
from typing import Any

import yaml

from coa_config.schema import (
    ChartAccountDef,
    ChartTemplate,
    CoaSettings,
    CodeBandDef,
    CodeSettings,
    DecimalSettings,
    HierarchySettings,
)
from coa_kernel.domain.classification import AccountSubType, AccountType, type_of_sub_type
from coa_kernel.exceptions import ConfigurationError

ROUNDING_MODES = frozenset({
    ROUND_HALF_UP,
    ROUND_HALF_EVEN,
    ROUND_HALF_DOWN,
    ROUND_DOWN,
    ROUND_UP,
    ROUND_CEILING,
    ROUND_FLOOR,
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def parse_settings(data: dict[str, Any]) -> CoaSettings:
    return CoaSettings(
        config_id=str(data.get("config_id", "default")),
        version=_int(data, "version", 1, minimum=1),
        decimal=parse_decimal_settings(_section(data, "decimal")),
        hierarchy=parse_hierarchy_settings(_section(data, "hierarchy")),
        codes=parse_code_settings(_section(data, "codes")),
    )


def parse_decimal_settings(data: dict[str, Any]) -> DecimalSettings:
    rounding = str(data.get("rounding", ROUND_HALF_UP))
    if rounding not in ROUNDING_MODES:
        raise ConfigurationError("decimal.rounding", f"unknown rounding mode '{rounding}'")
    return DecimalSettings(
        precision=_int(data, "precision", 2, minimum=0, prefix="decimal"),
        rounding=rounding,
        max_mantissa_digits=_int(data, "max_mantissa_digits", 38, minimum=1, prefix="decimal"),
    )


def parse_hierarchy_settings(data: dict[str, Any]) -> HierarchySettings:
    currency = str(data.get("default_currency", "USD")).upper().strip()
    if len(currency) != 3 or not currency.isalpha():
        raise ConfigurationError("hierarchy.default_currency", f"'{currency}' is not a currency code")
    return HierarchySettings(
        default_currency=currency,
        max_tree_depth=_int(data, "max_tree_depth", 32, minimum=1, prefix="hierarchy"),
        max_code_retries=_int(data, "max_code_retries", 3, minimum=1, prefix="hierarchy"),
    )


def parse_code_settings(data: dict[str, Any]) -> CodeSettings:
    type_bands = _parse_bands(data.get("type_bands") or {}, "codes.type_bands")
    for name, _ in type_bands:
        _enum(AccountType, name, f"codes.type_bands.{name}")
    missing = {t.value for t in AccountType} - {name for name, _ in type_bands}
    if missing:
        raise ConfigurationError("codes.type_bands", f"missing bands for {', '.join(sorted(missing))}")

    sub_type_bands = _parse_bands(data.get("sub_type_bands") or {}, "codes.sub_type_bands")
    for name, _ in sub_type_bands:
        _enum(AccountSubType, name, f"codes.sub_type_bands.{name}")

    return CodeSettings(
        width=_int(data, "width", 4, minimum=1, prefix="codes"),
        increment=_int(data, "increment", 1, minimum=1, prefix="codes"),
        parent_prefix_digits=_int(data, "parent_prefix_digits", 2, minimum=1, prefix="codes"),
        type_bands=type_bands,
        sub_type_bands=sub_type_bands,
    )


def _parse_bands(data: Any, key: str) -> tuple[tuple[str, CodeBandDef], ...]:
    if not isinstance(data, dict):
        raise ConfigurationError(key, "must be a mapping of name -> [start, end]")
    bands = []
    for name, bounds in sorted(data.items()):
        if (
            not isinstance(bounds, (list, tuple))
            or len(bounds) != 2
            or not all(isinstance(b, int) and not isinstance(b, bool) for b in bounds)
        ):
            raise ConfigurationError(f"{key}.{name}", "must be [start, end] integers")
        start, end = bounds
        if start < 0 or end < start:
            raise ConfigurationError(f"{key}.{name}", f"invalid range {start}-{end}")
        bands.append((str(name), CodeBandDef(start=start, end=end)))
    return tuple(bands)


# ---------------------------------------------------------------------------
# Chart templates
# ---------------------------------------------------------------------------


def parse_chart_template(data: dict[str, Any]) -> ChartTemplate:
    raw_accounts = data.get("accounts") or []
    if not isinstance(raw_accounts, list):
        raise ConfigurationError("accounts", "must be a list")

    accounts: list[ChartAccountDef] = []
    types_by_code: dict[str, str] = {}
    for index, raw in enumerate(raw_accounts):
        key = f"accounts[{index}]"
        if not isinstance(raw, dict):
            raise ConfigurationError(key, "must be a mapping")
        try:
            code = str(raw["code"]).strip()
            name = str(raw["name"]).strip()
            account_type = str(raw["type"])
            sub_type = str(raw["sub_type"])
        except KeyError as exc:
            raise ConfigurationError(f"{key}.{exc.args[0]}", "is required") from None

        _enum(AccountType, account_type, f"{key}.type")
        _enum(AccountSubType, sub_type, f"{key}.sub_type")
        if type_of_sub_type(AccountSubType(sub_type)).value != account_type:
            raise ConfigurationError(
                f"{key}.sub_type", f"'{sub_type}' is not valid for type '{account_type}'"
            )
        if code in types_by_code:
            raise ConfigurationError(f"{key}.code", f"duplicate code '{code}'")

        parent = raw.get("parent")
        parent_code = str(parent) if parent is not None else None
        if parent_code is not None:
            if parent_code not in types_by_code:
                raise ConfigurationError(
                    f"{key}.parent", f"parent '{parent_code}' must be listed before '{code}'"
                )
            if types_by_code[parent_code] != account_type:
                raise ConfigurationError(
                    f"{key}.parent", f"parent '{parent_code}' has a different account type"
                )

        types_by_code[code] = account_type
        accounts.append(
            ChartAccountDef(
                code=code,
                name=name,
                account_type=account_type,
                sub_type=sub_type,
                parent_code=parent_code,
                is_control_account=bool(raw.get("control", False)),
                allow_direct_transactions=bool(raw.get("direct", True)),
                description=raw.get("description"),
            )
        )

    return ChartTemplate(
        name=str(data.get("name", "default")),
        version=_int(data, "version", 1, minimum=1),
        accounts=tuple(accounts),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(key, "must be a mapping")
    return section


def _int(
    data: dict[str, Any],
    key: str,
    default: int,
    minimum: int,
    prefix: str | None = None,
) -> int:
    full_key = f"{prefix}.{key}" if prefix else key
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(full_key, f"must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(full_key, f"must be >= {minimum}, got {value}")
    return value


def _enum(enum_cls: type, value: str, key: str) -> None:
    try:
        enum_cls(value)
    except ValueError:
        raise ConfigurationError(key, f"unknown value '{value}'") from None
