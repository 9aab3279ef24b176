from typing import Annotated
from fastapi import Depends
from app.modules.auth.dependencies import get_current_user, require_capability, Capability
from app.modules.auth.models import User

user_dependency = Annotated[User, Depends(get_current_user)]
admin_dependency = Annotated[User, Depends(require_capability(Capability.MANAGE_USERS))]
client_manager_dependency = Annotated[User, Depends(require_capability(Capability.MANAGE_CLIENTS))]
invoice_manager_dependency = Annotated[User, Depends(require_capability(Capability.MANAGE_INVOICES))]
invoice_renderer_dependency = Annotated[User, Depends(require_capability(Capability.RENDER_INVOICES))]
