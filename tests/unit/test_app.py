"""uvicorn 起動パスのテスト"""

from uvicorn.importer import import_from_string

from tripsync.entrypoints.api.app import app


def test_uvicorn_import_string_resolves_app():
    assert import_from_string("tripsync.entrypoints.api.app:app") is app
