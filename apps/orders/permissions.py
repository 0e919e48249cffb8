from apps.accounts.models import Role
from apps.accounts.permissions import HasRole

CanCreateOrders = HasRole.of(
    Role.CUSTOMER, Role.CASHIER, Role.BRANCH_MANAGER, Role.ADMIN, Role.GENERAL_MANAGER,
)

CanUpdateOrderStatus = HasRole.of(
    Role.CHEF, Role.CASHIER, Role.BRANCH_MANAGER, Role.ADMIN, Role.GENERAL_MANAGER,
)

CanDeleteOrders = HasRole.of(Role.ADMIN, Role.BRANCH_MANAGER)
