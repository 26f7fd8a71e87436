from pocketguard.core.aggregator import (
    CategoryBreakdown,
    aggregate_by_category,
    category_percentages,
    total_spent,
)
from pocketguard.core.models import (
    BalanceState,
    BudgetState,
    CategoryTotal,
    Milestone,
    Severity,
    Transaction,
    User,
)
from pocketguard.core.monthly import group_by_month
from pocketguard.core.progress import evaluate_balance, evaluate_budget
