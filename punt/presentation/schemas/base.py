from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    全スキーマの基本クラス

    JSONのキーはcamelCase、Python側はsnake_case。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TimestampSchema(BaseSchema):
    created_at: datetime
    updated_at: datetime


class SuccessResponse(BaseSchema):
    success: bool = True


# 空文字はメールアドレスの削除として扱う
Email = Annotated[
    str, Field(max_length=255, pattern=r"^$|^[^@\s]+@[^@\s]+\.[^@\s]+$")
]
