"""
Config -> Kernel Bridges.

Functions that convert loaded settings into kernel objects.  These live
in coa_config (the producer) because the kernel must NEVER import
coa_config.

Usage:
    from coa_config import load_settings, load_chart_template
    from coa_config.bridges import build_kernel_api, build_chart_seed

    settings = load_settings()
    api = build_kernel_api(store, settings, clock=clock)
    api.seed_default_chart(company_id, build_chart_seed(load_chart_template()))
"""

from __future__ import annotations

from coa_config.schema import ChartTemplate, CoaSettings
from coa_kernel.api import ChartOfAccountsAPI
from coa_kernel.domain.classification import AccountSubType, AccountType
from coa_kernel.domain.clock import Clock
from coa_kernel.domain.code_scheme import CodeBand, CodeScheme
from coa_kernel.domain.decimal_math import DecimalMath
from coa_kernel.domain.dtos import ChartSeedEntry
from coa_kernel.services.hierarchy_manager import HierarchyPolicy
from coa_kernel.store.base import LedgerStore


def build_decimal_math(settings: CoaSettings) -> DecimalMath:
    return DecimalMath(
        scale=settings.decimal.precision,
        rounding=settings.decimal.rounding,
        max_digits=settings.decimal.max_mantissa_digits,
    )


def build_code_scheme(settings: CoaSettings) -> CodeScheme:
    codes = settings.codes
    return CodeScheme(
        width=codes.width,
        increment=codes.increment,
        parent_prefix_digits=codes.parent_prefix_digits,
        type_bands={
            AccountType(name): CodeBand(band.start, band.end)
            for name, band in codes.type_bands
        },
        sub_type_bands={
            AccountSubType(name): CodeBand(band.start, band.end)
            for name, band in codes.sub_type_bands
        },
    )


def build_hierarchy_policy(settings: CoaSettings) -> HierarchyPolicy:
    return HierarchyPolicy(
        max_tree_depth=settings.hierarchy.max_tree_depth,
        max_code_retries=settings.hierarchy.max_code_retries,
        default_currency=settings.hierarchy.default_currency,
    )


def build_chart_seed(template: ChartTemplate) -> list[ChartSeedEntry]:
    return [
        ChartSeedEntry(
            code=account.code,
            name=account.name,
            account_type=AccountType(account.account_type),
            sub_type=AccountSubType(account.sub_type),
            parent_code=account.parent_code,
            is_control_account=account.is_control_account,
            allow_direct_transactions=account.allow_direct_transactions,
            description=account.description,
        )
        for account in template.accounts
    ]


def build_kernel_api(
    store: LedgerStore,
    settings: CoaSettings,
    clock: Clock | None = None,
) -> ChartOfAccountsAPI:
    """Wire a ChartOfAccountsAPI whose services all share ``settings``."""
    return ChartOfAccountsAPI.build(
        store,
        math=build_decimal_math(settings),
        clock=clock,
        scheme=build_code_scheme(settings),
        policy=build_hierarchy_policy(settings),
    )
