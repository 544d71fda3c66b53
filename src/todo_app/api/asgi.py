"""ASGI entrypoint for the todo app API."""

from todo_app.api.app import create_app
from todo_app.containers import build_container

app = create_app(build_container())
