"""
服务包初始化文件
"""

from .eligibility import evaluate_eligibility, applicable_items
from .discount_calculator import calculate_discount
from .auto_apply import select_auto_apply
from .revenue_allocator import allocate_revenue, distribute_discount, distribute_discounts
from .usage_ledger import UsageLedger

__all__ = [
    "evaluate_eligibility",
    "applicable_items",
    "calculate_discount",
    "select_auto_apply",
    "allocate_revenue",
    "distribute_discount",
    "distribute_discounts",
    "UsageLedger",
]
