"""
Typed Exception Hierarchy for the Chart-of-Accounts Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a CLI, a batch import) must react to failures
without parsing message strings.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA stored as attributes (offending field, invariant,
     account id, ...)

    try:
        manager.create_account(new_account)
    except InvalidSubTypeError as e:
        return {"error": e.code, "field": e.field, "invariant": e.invariant}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CoaKernelError (base)
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountValidationError
    |   |   +-- InvalidSubTypeError
    |   |   +-- InvalidStatusTransitionError
    |   |   +-- ImmutableFieldError
    |   |   +-- ArchivedAccountError
    |   +-- AccountNotPostableError
    |   +-- HasChildrenError
    |   +-- HasActivityError
    |
    +-- HierarchyError
    |   +-- TypeMismatchError
    |   +-- CycleDetectedError
    |   +-- TreeTooDeepError
    |
    +-- CodeError
    |   +-- DuplicateCodeError
    |   +-- CodeConflictError
    |   +-- CodeSpaceExhaustedError
    |   +-- InvalidAccountCodeError
    |
    +-- DecimalArithmeticError
    |   +-- DivisionByZeroError
    |   +-- PrecisionOverflowError
    |   +-- InvalidAmountError
    |
    +-- AggregationError
    |   +-- AggregationCancelledError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|---------------------------------------
Account      | ACCOUNT_NOT_FOUND           | Account ID doesn't exist in the tenant
             | VALIDATION_ERROR            | Field or invariant 1-3 violation
             | INVALID_SUB_TYPE            | Sub-type not allowed for the type
             | INVALID_STATUS_TRANSITION   | e.g. Archived -> Active without override
             | IMMUTABLE_FIELD             | type change, code change after activity
             | ARCHIVED_ACCOUNT            | Archived account used as a parent
             | ACCOUNT_NOT_POSTABLE        | Posting target is archived/inactive/control
             | HAS_CHILDREN                | Delete guard
             | HAS_ACTIVITY                | Delete guard
-------------|-----------------------------|---------------------------------------
Hierarchy    | TYPE_MISMATCH               | Parent type differs from child type
             | CYCLE_DETECTED              | Account would become its own ancestor
             | TREE_TOO_DEEP               | Depth limit exceeded
-------------|-----------------------------|---------------------------------------
Code         | DUPLICATE_CODE              | Code already used in the tenant
             | CODE_CONFLICT               | Generated code lost a race N times
             | CODE_SPACE_EXHAUSTED        | No free code left in a band/block
             | INVALID_ACCOUNT_CODE        | Malformed code
-------------|-----------------------------|---------------------------------------
Decimal      | DIVISION_BY_ZERO            | Division by zero
             | PRECISION_OVERFLOW          | Mantissa wider than the configured max
             | INVALID_AMOUNT              | float, NaN, Infinity or garbage input
-------------|-----------------------------|---------------------------------------
Aggregation  | AGGREGATION_CANCELLED       | Token cancelled or deadline passed
-------------|-----------------------------|---------------------------------------
Config       | CONFIGURATION_ERROR         | Invalid settings file

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError/KeyError, so
   they are catchable as a group without mixing in programming errors.
   DivisionByZeroError additionally inherits ArithmeticError because it
   is one.

2. ``code`` is a class attribute so it can be read without an instance
   (API documentation, mapping tables).

3. Everything a caller needs to render a message is an attribute.  The
   kernel never formats for presentation.
"""

from typing import Any


class CoaKernelError(Exception):
    """
    Base exception for all chart-of-accounts kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "COA_KERNEL_ERROR"

    def details(self) -> dict[str, Any]:
        """Structured context for transport mapping (public attributes only)."""
        return {
            k: v for k, v in vars(self).items() if not k.startswith("_")
        }


# Account-related exceptions


class AccountError(CoaKernelError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account was not found (or belongs to another tenant)."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountValidationError(AccountError):
    """
    An account field or structural invariant is violated.

    ``invariant`` names the violated rule (``sub_type``, ``parent_type``,
    ``level``, ``unique_code``, ``field``) so a caller can highlight the
    offending input without parsing the message.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, invariant: str = "field"):
        self.field = field
        self.reason = reason
        self.invariant = invariant
        super().__init__(f"Invalid {field}: {reason}")


class InvalidSubTypeError(AccountValidationError):
    """Sub-type is not in the allowed set for the account type."""

    code: str = "INVALID_SUB_TYPE"

    def __init__(self, account_type: str, sub_type: str):
        self.account_type = account_type
        self.sub_type = sub_type
        super().__init__(
            "sub_type",
            f"sub-type '{sub_type}' is not valid for type '{account_type}'",
            invariant="sub_type",
        )


class InvalidStatusTransitionError(AccountValidationError):
    """Requested status change is not permitted from the current status."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, account_id: str, from_status: str, to_status: str):
        self.account_id = account_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            "status",
            f"cannot move account {account_id} from {from_status} to {to_status}",
            invariant="status_transition",
        )


class ImmutableFieldError(AccountValidationError):
    """A field that may no longer change was included in an update."""

    code: str = "IMMUTABLE_FIELD"

    def __init__(self, account_id: str, field: str, reason: str):
        self.account_id = account_id
        super().__init__(field, reason, invariant="immutable")


class ArchivedAccountError(AccountValidationError):
    """An archived account cannot take new children or be reactivated implicitly."""

    code: str = "ARCHIVED_ACCOUNT"

    def __init__(self, account_id: str, field: str = "parent_account_id"):
        self.account_id = account_id
        super().__init__(
            field,
            f"account {account_id} is archived",
            invariant="archived",
        )


class AccountNotPostableError(AccountError):
    """Account cannot receive direct transaction postings."""

    code: str = "ACCOUNT_NOT_POSTABLE"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Account {account_id} is not postable: {reason}")


class HasChildrenError(AccountError):
    """Account cannot be deleted because it has child accounts."""

    code: str = "HAS_CHILDREN"

    def __init__(self, account_id: str, child_count: int):
        self.account_id = account_id
        self.child_count = child_count
        super().__init__(
            f"Account {account_id} cannot be deleted: it has {child_count} child account(s)"
        )


class HasActivityError(AccountError):
    """Account cannot be deleted because it has recorded activity."""

    code: str = "HAS_ACTIVITY"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Account {account_id} cannot be deleted: it has recorded activity"
        )


# Hierarchy-related exceptions


class HierarchyError(CoaKernelError):
    """Base exception for tree-structure errors."""

    code: str = "HIERARCHY_ERROR"


class TypeMismatchError(HierarchyError):
    """Parent and child account types differ."""

    code: str = "TYPE_MISMATCH"

    def __init__(self, account_type: str, parent_id: str, parent_type: str):
        self.account_type = account_type
        self.parent_id = parent_id
        self.parent_type = parent_type
        self.field = "parent_account_id"
        super().__init__(
            f"Child account type '{account_type}' must match parent "
            f"{parent_id} type '{parent_type}'"
        )


class CycleDetectedError(HierarchyError):
    """Operation would make an account its own ancestor."""

    code: str = "CYCLE_DETECTED"

    def __init__(self, account_id: str, new_parent_id: str):
        self.account_id = account_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Moving account {account_id} under {new_parent_id} would create a cycle"
        )


class TreeTooDeepError(HierarchyError):
    """Hierarchy depth limit exceeded."""

    code: str = "TREE_TOO_DEEP"

    def __init__(self, account_id: str, max_depth: int):
        self.account_id = account_id
        self.max_depth = max_depth
        super().__init__(
            f"Account hierarchy under {account_id} exceeds {max_depth} levels"
        )


# Code-related exceptions


class CodeError(CoaKernelError):
    """Base exception for account code errors."""

    code: str = "CODE_ERROR"


class DuplicateCodeError(CodeError):
    """Account code is already used within the company."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, company_id: str, account_code: str):
        self.company_id = company_id
        self.account_code = account_code
        self.field = "code"
        super().__init__(
            f"Account code '{account_code}' already exists in company {company_id}"
        )


class CodeConflictError(CodeError):
    """Generated code kept colliding with concurrent creations."""

    code: str = "CODE_CONFLICT"

    def __init__(self, company_id: str, attempts: int):
        self.company_id = company_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique account code in company {company_id} "
            f"after {attempts} attempt(s)"
        )


class CodeSpaceExhaustedError(CodeError):
    """No free code remains in the band or parent block."""

    code: str = "CODE_SPACE_EXHAUSTED"

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"No available account codes left for pattern {pattern}")


class InvalidAccountCodeError(CodeError):
    """Account code is malformed."""

    code: str = "INVALID_ACCOUNT_CODE"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        self.field = "code"
        super().__init__(f"Invalid account code '{account_code}': {reason}")


# Decimal arithmetic exceptions


class DecimalArithmeticError(CoaKernelError):
    """Base exception for exact-decimal arithmetic failures."""

    code: str = "DECIMAL_ARITHMETIC_ERROR"


class DivisionByZeroError(DecimalArithmeticError, ArithmeticError):
    """Division by zero."""

    code: str = "DIVISION_BY_ZERO"

    def __init__(self, dividend: str):
        self.dividend = dividend
        super().__init__(f"Division of {dividend} by zero")


class PrecisionOverflowError(DecimalArithmeticError):
    """Result mantissa is wider than the configured maximum."""

    code: str = "PRECISION_OVERFLOW"

    def __init__(self, value: str, max_digits: int):
        self.value = value
        self.max_digits = max_digits
        super().__init__(
            f"Value {value} exceeds the maximum of {max_digits} significant digits"
        )


class InvalidAmountError(DecimalArithmeticError):
    """Amount is a float, non-finite, or not a number at all."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value}: {reason}")


# Aggregation exceptions


class AggregationError(CoaKernelError):
    """Base exception for balance aggregation errors."""

    code: str = "AGGREGATION_ERROR"


class AggregationCancelledError(AggregationError):
    """Aggregation stopped because its cancellation token fired."""

    code: str = "AGGREGATION_CANCELLED"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Balance aggregation for {account_id} cancelled: {reason}")


# Configuration exceptions


class ConfigurationError(CoaKernelError):
    """Settings failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
