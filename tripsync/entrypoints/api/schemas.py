"""API リクエスト / レスポンスの共通ベースモデル

クライアント（モバイルアプリ）とは camelCase の JSON でやり取りする。
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case のフィールドを camelCase の JSON キーで入出力する"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OkResponse(CamelModel):
    ok: bool = True
