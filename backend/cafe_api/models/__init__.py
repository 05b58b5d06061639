from .tenancy import Outlet
from .auth import User, UserOutletAccess
from .menu import MenuCategory, MenuSubCategory, MenuItem
from .orders import Order
from .loyalty import LoyaltyAccount, PointsTransaction, Reward
from .offers import Offer
from .inventory import InventoryItem, InventoryTransaction
from .sales import Sale, Expense, OnlineSale
from .forecasts import PriceForecast
from .costing import Ingredient, IngredientPriceHistory, Recipe, RecipeIngredient, OverheadCost
from .finance import ExpenseType, PlatformCharge, OperationalExpense
from .reconciliation import CashReconciliation
from .security import SecurityEvent

__all__ = [
    'Outlet',
    'User', 'UserOutletAccess',
    'MenuCategory', 'MenuSubCategory', 'MenuItem',
    'Order',
    'LoyaltyAccount', 'PointsTransaction', 'Reward',
    'Offer',
    'InventoryItem', 'InventoryTransaction',
    'Sale', 'Expense', 'OnlineSale',
    'PriceForecast',
    'Ingredient', 'IngredientPriceHistory', 'Recipe', 'RecipeIngredient', 'OverheadCost',
    'ExpenseType', 'PlatformCharge', 'OperationalExpense',
    'CashReconciliation',
    'SecurityEvent',
]
