from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.repositories.system_settings_repository import (
    SystemSettingsService,
)
from punt.presentation.api.deps import require_admin
from punt.presentation.schemas.admin import (
    SystemSettingsResponse,
    SystemSettingsUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=SystemSettingsResponse)
def get_system_settings(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> SystemSettingsResponse:
    service = SystemSettingsService(db)
    return SystemSettingsResponse.from_settings(
        service.get(), service.default_role_permissions()
    )


@router.patch("", response_model=SystemSettingsResponse)
def update_system_settings(
    body: SystemSettingsUpdateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> SystemSettingsResponse:
    """
    システム設定の更新

    defaultRolePermissions は新規プロジェクトの既定ロールにのみ反映される。
    """
    service = SystemSettingsService(db)
    # logoUrl 以外は null を送っても変更しない
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key == "logo_url"
    }
    role_permissions = changes.pop("default_role_permissions", None)
    if changes:
        service.update(changes, admin.id)
    if role_permissions is not None:
        service.set_default_role_permissions(role_permissions, admin.id)
    return SystemSettingsResponse.from_settings(
        service.get(), service.default_role_permissions()
    )
