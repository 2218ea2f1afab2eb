from __future__ import annotations

import json
from typing import Any

from aiohttp import web


def dict_to_json_str(o: Any) -> str:
    """
    Converts a python object into indented json.
    """
    return json.dumps(o, indent=2)


def obj_to_response(o: Any, status: int = 200) -> web.Response:
    """
    Converts a python object into a json response.
    """
    return web.Response(body=dict_to_json_str(o), status=status, content_type="application/json")


def text_response(text: str, status: int) -> web.Response:
    return web.Response(text=text, status=status, content_type="text/plain")
