"""Public interface for the ``budget_tracker`` package.

Re-exports the categorization engine (keyword classifier, rule engine, rule
generator, AI categorizer, orchestrator), the data models and the workflow
entry points. There is no runtime logic here, only symbol re-exports.
"""

from .ai_categorizer import categorize_with_ai
from .basic import BasicClassification, classify
from .errors import (
    BudgetTrackerError,
    ConfigurationError,
    InvalidAIResponseError,
    MissingApiKeyError,
    MissingSpreadsheetError,
    NoCategorizedDataError,
    NotSignedInError,
    SessionExpiredError,
)
from .models import (
    ActivityLogEntry,
    AmountRange,
    AmountRangeRule,
    ApiCallLog,
    DescriptionContainsRule,
    DescriptionRegexRule,
    DescriptionStartsWithRule,
    MerchantRule,
    Rule,
    RuleGenerationResult,
    RuleMatch,
    Sheet,
    Transaction,
    parse_rule,
)
from .orchestrator import categorize_basic, categorize_with_rules_and_ai
from .rule_generator import generate_rules
from .rules import (
    apply_rule,
    categorize_transactions_with_rules,
    categorize_with_rules,
    detect_conflicts,
    find_rule_conflicts,
    update_rule_stats,
)
from .taxonomy import CATEGORIES, SUBCATEGORIES
from .workflows import (
    accept_rules,
    generate_insights,
    propose_rules,
    recategorize_all,
    upload_transactions,
)

__all__ = [
    # Engine
    "apply_rule",
    "categorize_basic",
    "categorize_transactions_with_rules",
    "categorize_with_ai",
    "categorize_with_rules",
    "categorize_with_rules_and_ai",
    "classify",
    "detect_conflicts",
    "find_rule_conflicts",
    "generate_rules",
    "update_rule_stats",
    # Workflows
    "accept_rules",
    "generate_insights",
    "propose_rules",
    "recategorize_all",
    "upload_transactions",
    # Models
    "ActivityLogEntry",
    "AmountRange",
    "AmountRangeRule",
    "ApiCallLog",
    "BasicClassification",
    "DescriptionContainsRule",
    "DescriptionRegexRule",
    "DescriptionStartsWithRule",
    "MerchantRule",
    "Rule",
    "RuleGenerationResult",
    "RuleMatch",
    "Sheet",
    "Transaction",
    "parse_rule",
    "CATEGORIES",
    "SUBCATEGORIES",
    # Errors
    "BudgetTrackerError",
    "ConfigurationError",
    "InvalidAIResponseError",
    "MissingApiKeyError",
    "MissingSpreadsheetError",
    "NoCategorizedDataError",
    "NotSignedInError",
    "SessionExpiredError",
]
