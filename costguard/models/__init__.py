from costguard.models.budget import BudgetSetting, NativeBudgetAlertState
from costguard.models.user import User

__all__ = ["BudgetSetting", "NativeBudgetAlertState", "User"]
