from .server import create_app, handle_client_message

__all__ = ["create_app", "handle_client_message"]
