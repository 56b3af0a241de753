"""
AccountCodeGenerator -- next free account code for a tenant.

Responsibility:
    Reads the tenant's taken codes from the Ledger Store and asks the
    CodeScheme for the next free code in the type band (roots) or the
    parent's prefix block (children).

Architecture position:
    Kernel > Services.  Called by HierarchyManager.create_account and by
    the API facade's generate_account_code.

Invariants enforced:
    - The generated code is a SUGGESTION.  Uniqueness is enforced only by
      the store's insert; a lost race is retried by the caller.
    - Archived accounts keep their codes reserved.

Failure modes:
    - AccountNotFoundError if the parent does not exist in the company.
    - TypeMismatchError if the parent's type differs from the requested type.
    - AccountValidationError for an unknown account type or sub-type.
    - CodeSpaceExhaustedError / InvalidAccountCodeError from the CodeScheme.
"""

from uuid import UUID

from coa_kernel.domain.classification import AccountSubType, AccountType, coerce_enum
from coa_kernel.domain.code_scheme import CodeScheme
from coa_kernel.domain.dtos import AccountFilter, CodeSuggestion
from coa_kernel.exceptions import AccountNotFoundError, TypeMismatchError
from coa_kernel.logging_config import get_logger
from coa_kernel.services.base import BaseService
from coa_kernel.store.base import LedgerStore

logger = get_logger("services.code_generator")


class AccountCodeGenerator(BaseService):
    """Deterministic code suggestions backed by a CodeScheme."""

    def __init__(self, store: LedgerStore, scheme: CodeScheme | None = None):
        super().__init__(store)
        self.scheme = scheme or CodeScheme()

    def generate(
        self,
        company_id: UUID,
        account_type: AccountType,
        sub_type: AccountSubType | None = None,
        parent_account_id: UUID | None = None,
    ) -> CodeSuggestion:
        account_type = coerce_enum(AccountType, account_type, "account_type")
        if sub_type is not None:
            sub_type = coerce_enum(AccountSubType, sub_type, "sub_type")
        taken = self.store.fetch_codes(company_id)

        if parent_account_id is None:
            suggestion = self.scheme.next_root_code(account_type, sub_type, taken)
        else:
            parent = self.store.get_account(parent_account_id)
            if parent is None or parent.company_id != company_id:
                raise AccountNotFoundError(str(parent_account_id))
            if parent.account_type != account_type:
                raise TypeMismatchError(
                    account_type.value, str(parent.id), parent.account_type.value
                )
            siblings = self.store.fetch_accounts(
                company_id, AccountFilter(parent_account_id=parent.id)
            )
            suggestion = self.scheme.next_child_code(
                parent.code, [child.code for child in siblings], taken
            )

        logger.debug(
            "account_code_suggested",
            extra={
                "company_id": company_id,
                "account_type": account_type,
                "code": suggestion.code,
                "pattern": suggestion.pattern,
            },
        )
        return suggestion

    def is_code_available(
        self,
        company_id: UUID,
        code: str,
        exclude_account_id: UUID | None = None,
    ) -> bool:
        """True if no account other than ``exclude_account_id`` uses ``code``."""
        existing = self.store.get_account_by_code(company_id, code)
        return existing is None or existing.id == exclude_account_id
