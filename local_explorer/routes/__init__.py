# local_explorer/routes/__init__.py
from .explorer import create_explorer_blueprint

__all__ = ["create_explorer_blueprint"]
